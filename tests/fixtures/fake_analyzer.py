"""Stand-in for the analyzer CLI: ``fake_analyzer.py SOURCE --json OUTPUT``.

FAKE_ANALYZER_RESULTS  file copied to OUTPUT (nothing written when unset)
FAKE_ANALYZER_EXIT     exit code (default 0)
FAKE_ANALYZER_SLEEP    seconds to sleep before doing anything
"""
import os
import shutil
import sys
import time


def main(argv):
    source, output = argv[1], argv[3]
    time.sleep(float(os.environ.get("FAKE_ANALYZER_SLEEP", "0")))
    if not os.path.exists(source):
        sys.stderr.write(f"source {source} not found in {os.getcwd()}\n")
        return 3
    results = os.environ.get("FAKE_ANALYZER_RESULTS")
    if results:
        shutil.copyfile(results, output)
    sys.stderr.write("analysis finished\n")
    return int(os.environ.get("FAKE_ANALYZER_EXIT", "0"))


if __name__ == "__main__":
    sys.exit(main(sys.argv))
