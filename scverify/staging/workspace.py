# Per-run staging slots for the files exchanged with the analyzer process.
from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Union

from scverify.errors import StagingError
from scverify.schema.models import SourceArtifact

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "results.json"
SLOT_PREFIX = "scverify-"


@dataclass
class StagingSlot:
    """Isolated directory holding one run's source and analyzer output."""

    run_id: str
    workdir: Path
    source_path: Path
    output_path: Path
    cleanup_warnings: List[str] = field(default_factory=list)


class ArtifactStaging:
    def __init__(self, root: Optional[Union[str, Path]] = None) -> None:
        self.root = Path(root) if root is not None else Path(tempfile.gettempdir())

    @contextmanager
    def stage(self, artifact: SourceArtifact, run_id: Optional[str] = None) -> Iterator[StagingSlot]:
        """Write ``artifact`` into a fresh slot and remove the slot on exit.

        The output path is reserved but not created; the analyzer writes it.
        """

        slot = self._acquire(artifact, run_id or uuid.uuid4().hex)
        try:
            yield slot
        finally:
            self.release(slot)

    def _acquire(self, artifact: SourceArtifact, run_id: str) -> StagingSlot:
        workdir = self.root / f"{SLOT_PREFIX}{run_id}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingError(
                StagingError.WRITE_FAILED, f"cannot create staging root {self.root}: {exc}"
            ) from exc
        try:
            workdir.mkdir()
        except FileExistsError as exc:
            raise StagingError(
                StagingError.SLOT_IN_USE, f"staging slot {workdir} is already in use"
            ) from exc
        except OSError as exc:
            raise StagingError(
                StagingError.WRITE_FAILED, f"cannot create staging slot {workdir}: {exc}"
            ) from exc

        slot = StagingSlot(
            run_id=run_id,
            workdir=workdir,
            source_path=workdir / artifact.identifier,
            output_path=workdir / (RESULTS_FILENAME if artifact.identifier != RESULTS_FILENAME else f"_{RESULTS_FILENAME}"),
        )
        try:
            slot.source_path.write_bytes(artifact.content)
        except OSError as exc:
            self.release(slot)
            raise StagingError(
                StagingError.WRITE_FAILED, f"cannot write {slot.source_path}: {exc}"
            ) from exc

        logger.debug("Staged %s in %s", artifact.identifier, workdir)
        return slot

    def release(self, slot: StagingSlot) -> List[str]:
        """Best-effort removal; problems are collected, never raised."""

        for path in (slot.source_path, slot.output_path):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                self._warn(slot, StagingError(StagingError.CLEANUP_FAILED, f"cannot remove {path}: {exc}"))

        if slot.workdir.exists():
            # the analyzer may leave its own scratch files (crytic-export etc.)
            try:
                shutil.rmtree(slot.workdir)
            except OSError as exc:
                self._warn(
                    slot,
                    StagingError(StagingError.CLEANUP_FAILED, f"cannot remove {slot.workdir}: {exc}"),
                )
        return slot.cleanup_warnings

    @staticmethod
    def _warn(slot: StagingSlot, error: StagingError) -> None:
        logger.warning("Staging cleanup failed: %s", error)
        slot.cleanup_warnings.append(str(error))


__all__ = ["ArtifactStaging", "StagingSlot", "RESULTS_FILENAME"]
