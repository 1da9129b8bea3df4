"""Source checksum recorded at run creation and re-checked on resume."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

from caselens.db.schema import Run
from caselens.errors import IntegrityCheckError

logger = logging.getLogger(__name__)

_CHUNK = 1 << 16


def compute_source_checksum(path: str | Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_source_checksum(run: Run, loaded_checksum: Optional[str] = None) -> Optional[bool]:
    """
    Compare the run's stored checksum against the source file as it is now
    and, when given, against the checksum recorded when the corpus store was
    last loaded from that file.

    Returns None for runs created without a checksum (nothing to compare),
    True on match. A mismatch or a vanished source raises IntegrityCheckError.
    """
    if not run.source_checksum:
        logger.warning(
            "Run %s has no stored source checksum; resuming without integrity check", run.run_id
        )
        return None

    source = Path(run.data_source)
    if not source.exists():
        raise IntegrityCheckError(
            f"Source file for run {run.run_id} no longer exists: {source}"
        )

    current = compute_source_checksum(source)
    if current != run.source_checksum:
        raise IntegrityCheckError(
            f"Source file {source} changed since run {run.run_id} started "
            f"(stored {run.source_checksum[:12]}, now {current[:12]}); refusing to resume"
        )
    if loaded_checksum is not None and loaded_checksum != run.source_checksum:
        raise IntegrityCheckError(
            f"Corpus store for {source} was reloaded from different content since run "
            f"{run.run_id} started (stored {run.source_checksum[:12]}, loaded {loaded_checksum[:12]}); "
            "refusing to resume"
        )
    return True
