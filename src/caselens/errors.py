"""Error taxonomy for the run engine."""

from __future__ import annotations


class CaselensError(Exception):
    """Base error."""


class ConfigurationError(CaselensError):
    """Invalid or missing run parameters, detected before a run exists."""


class IntegrityCheckError(CaselensError):
    """Source corpus checksum does not match the one recorded for the run."""


class ClassifierError(CaselensError):
    """The classification service answered, but not with a usable reply."""


class RunNotFoundError(CaselensError):
    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} does not exist")
        self.run_id = run_id


class RunStateError(CaselensError):
    """Requested lifecycle transition is not allowed from the run's status."""


class ResumeLockError(CaselensError):
    """Another live process holds the resume lock for this run."""

    def __init__(self, run_id: str, pid: int, lock_path: str) -> None:
        super().__init__(
            f"Resume lock exists for run {run_id} (PID: {pid}). "
            f"Another process may be resuming this run. "
            f"If that process crashed, verify the PID is not active and remove: {lock_path}"
        )
        self.run_id = run_id
        self.pid = pid
        self.lock_path = lock_path


class RunFailedError(CaselensError):
    """An unrecoverable error escaped the item loop; the run was marked failed."""

    def __init__(self, run_id: str, cause: BaseException) -> None:
        super().__init__(f"Run {run_id} failed: {type(cause).__name__}: {cause}")
        self.run_id = run_id
        self.cause = cause
