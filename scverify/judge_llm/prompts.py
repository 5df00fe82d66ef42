"""Judge instructions and request payload construction."""
from __future__ import annotations

import json
from typing import Any, Dict, List

SYSTEM_PROMPT = """You are an expert smart contract security auditor acting as a judge.
You receive one finding reported by a static analyzer together with the full
Solidity source it was reported against. Decide whether the finding is a real,
exploitable vulnerability in this code or a false positive.

Answer with a single JSON object and nothing else:
{
  "is_real_vulnerability": true | false,
  "confidence": <number between 0 and 1>,
  "rationale": "<short explanation referencing the relevant functions>"
}"""

SEPARATOR = "_______"


def build_user_message(finding_payload: Dict[str, Any], source_code: str) -> str:
    finding_json = json.dumps(finding_payload, sort_keys=True, ensure_ascii=False)
    return (
        "Analyze the vulnerability and return the result as a JSON object:\n\n"
        f"{finding_json}\n{SEPARATOR}\n"
        "Against the smart contract code:\n\n"
        f"{source_code}"
    )


def build_messages(finding_payload: Dict[str, Any], source_code: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_message(finding_payload, source_code)},
    ]
