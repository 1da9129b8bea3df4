"""Run lifecycle: start, execute, resume, finalize, fail."""

from __future__ import annotations

from datetime import timedelta
import json
import logging
import socket
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from caselens.config.experiment import ExperimentConfig
from caselens.config.settings import Settings, settings as default_settings
from caselens.db.schema import Run, utcnow
from caselens.errors import ConfigurationError, IntegrityCheckError, RunFailedError, RunStateError
from caselens.logging_setup import run_log_handler
from caselens.models.domain import ExecutionResult, RunStatusView
from caselens.repos.corpus_repo import CorpusRepository
from caselens.repos.result_repo import ResultRepository
from caselens.repos.runs_repo import COMPLETED, FAILED, RUNNING, RunsRepository
from caselens.services.classifier import Classifier
from caselens.services.corpus_loader import source_tag_for
from caselens.services.exports import ExportPaths, export_results
from caselens.services.integrity import compute_source_checksum, verify_source_checksum
from caselens.services.item_processor import ItemProcessor
from caselens.services.metrics import MetricsAggregator
from caselens.services.queries import describe_run
from caselens.services.response_parser import ParseOutcome, parse_response
from caselens.services.resume_guard import ResumeGuard
from caselens.services.work_set import NORMAL, RETRY_ERRORS_ONLY, resolve_work_items

logger = logging.getLogger(__name__)


def _settings_snapshot(settings: Settings) -> dict:
    # the api key stays out of the stored snapshot
    return {
        "llm_provider": settings.llm_provider,
        "llm_api_url": settings.llm_api_url,
        "llm_timeout_s": settings.llm_timeout_s,
        "classifier_max_retries": settings.classifier_max_retries,
        "classifier_backoff_s": settings.classifier_backoff_s,
        "progress_every": settings.progress_every,
    }


def settings_for_run(run: Run, base: Settings = default_settings) -> Settings:
    """
    Process settings with the run's stored snapshot laid over them, so a
    resumed run talks to the classifier the way its registry row says.

    The api key is never stored; it always comes from `base`.
    """
    try:
        snapshot = json.loads(run.config_json or "{}").get("settings") or {}
    except (ValueError, AttributeError):
        snapshot = {}
    stored = {k: v for k, v in snapshot.items() if k in Settings.model_fields and k != "llm_api_key"}
    return base.model_copy(update=stored)


class RunController:
    """
    Orchestrates one run end to end.

    Settings are passed in at construction and the values that matter for a
    run are copied into its snapshot, so nothing below reads the environment.

    Every per-item write is its own transaction; the result log is the only
    record of what is done, so a crash between items loses at most the item
    in flight.
    """

    def __init__(
        self,
        session: Session,
        classifier: Classifier,
        settings: Settings = default_settings,
        parser: Callable[[str], ParseOutcome] = parse_response,
        guard: Optional[ResumeGuard] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.settings = settings
        self.clock = clock
        self.runs = RunsRepository(session)
        self.results = ResultRepository(session)
        self.corpus = CorpusRepository(session)
        self.metrics = MetricsAggregator(session)
        self.processor = ItemProcessor(session, classifier, parser=parser)
        self.guard = guard or ResumeGuard(settings.lock_dir)

    # ------------------------------------------------------------------ start

    def start_run(self, config: ExperimentConfig) -> str:
        """
        Register a new run (status=running) and return its id.

        The snapshot carries the resolved prompt text, not file references.
        No lock is taken: nobody else can know this run id yet.
        """
        data_source = source_tag_for(config.data.file)
        if not self.corpus.is_loaded(data_source):
            raise ConfigurationError(f"Corpus not loaded for {data_source}; run load-corpus first")
        checksum = compute_source_checksum(data_source)
        loaded = self.corpus.loaded_checksum(data_source)
        if loaded != checksum:
            # the run processes the store, so the store must hold this exact file
            raise ConfigurationError(
                f"{data_source} differs from what was loaded into the corpus store; "
                "reload it with load-corpus --force"
            )

        limit = config.run.max_items
        total_items = len(self.corpus.list_slice(data_source, limit=limit))

        snapshot = config.snapshot()
        snapshot["settings"] = _settings_snapshot(self.settings)

        run = Run(
            name=config.experiment.name,
            model_name=config.model.name,
            model_provider=config.model.provider or self.settings.llm_provider,
            temperature=config.model.temperature,
            system_prompt=config.prompt.system_prompt or "",
            user_template=config.prompt.user_template or "",
            prompt_version=config.prompt.version,
            prompt_author=config.experiment.author,
            run_seed=config.run.seed,
            api_url=config.model.api_url or self.settings.llm_api_url,
            hostname=socket.gethostname(),
            data_source=data_source,
            row_limit=limit,
            source_checksum=checksum,
            config_json=json.dumps(snapshot, sort_keys=True),
            total_items=total_items,
        )
        self.runs.create(run)
        logger.info(
            "Started run %s (%s, model=%s, %d items)",
            run.run_id,
            run.name,
            run.model_name,
            total_items,
        )
        return run.run_id

    # --------------------------------------------------------------- execute

    def execute(self, run_id: str, mode: str = NORMAL) -> ExecutionResult:
        """
        Process the run's work set, then finalize.

        Anything escaping the per-item boundary marks the run failed and is
        re-raised as RunFailedError.
        """
        run = self.runs.require(run_id)
        if run.status != RUNNING:
            raise RunStateError(f"Run {run_id} is {run.status}; only running runs can execute")

        try:
            with run_log_handler(run_id, self.settings.log_dir) as log_path:
                if not run.log_dir:
                    self.runs.set_log_dir(run_id, str(log_path.parent))
                return self._execute(run, mode)
        except Exception as e:
            self.mark_failed(run_id, f"{type(e).__name__}: {e}")
            raise RunFailedError(run_id, e) from e

    def _execute(self, run: Run, mode: str) -> ExecutionResult:
        items = resolve_work_items(self.session, run, mode)
        if not items:
            logger.info("Run %s has no remaining work (%s); finalizing", run.run_id, mode)
            return self._finish(run, attempted=0, errored=0)

        logger.info("Run %s: %d items to process (%s)", run.run_id, len(items), mode)
        every = max(1, self.settings.progress_every)
        started = self.clock()
        errored = 0

        for done, item in enumerate(items, start=1):
            row = self.processor.process(
                run,
                item.record,
                row_num=item.row_num,
                replace_errored=(mode == RETRY_ERRORS_ONLY),
            )
            if row.error_occurred:
                errored += 1
            if done % every == 0 and done < len(items):
                self._record_progress(run, started, done, len(items))

        self._record_progress(run, started, len(items), len(items))
        return self._finish(run, attempted=len(items), errored=errored)

    def _record_progress(self, run: Run, started: float, done: int, planned: int) -> None:
        processed = self.results.count_by_run(run.run_id)
        per_item = (self.clock() - started) / done if done else 0.0
        remaining = planned - done
        eta = utcnow() + timedelta(seconds=per_item * remaining) if remaining > 0 else None
        self.runs.update_progress(run.run_id, processed, estimated_completion_at=eta)

        total = run.total_items or 0
        pct = f"{100.0 * processed / total:.1f}%" if total else "n/a"
        logger.info(
            "Progress %d/%s (%s), %.2fs/item%s",
            processed,
            total or "?",
            pct,
            per_item,
            f", ETA {eta:%Y-%m-%d %H:%M:%S}" if eta else "",
        )

    def _finish(self, run: Run, attempted: int, errored: int) -> ExecutionResult:
        artifacts = None
        if self._save_exports(run):
            artifacts = export_results(self.session, run, self.settings.reports_dir)
        final = self.finalize_run(run.run_id, artifacts)
        return ExecutionResult(
            run_id=run.run_id,
            status=final.status,
            items_attempted=attempted,
            items_errored=errored,
            metrics=self.metrics.compute(run.run_id),
            csv_file=final.csv_file,
            json_file=final.json_file,
        )

    @staticmethod
    def _save_exports(run: Run) -> bool:
        try:
            snapshot = json.loads(run.config_json or "{}")
        except ValueError:
            return False
        return bool((snapshot.get("run") or {}).get("save_csv_json", True))

    # ------------------------------------------------------------- lifecycle

    def finalize_run(self, run_id: str, artifact_paths: Optional[ExportPaths] = None) -> Run:
        """Only path to status=completed: metrics, artifacts, ended_at in one update."""
        run = self.runs.require(run_id)
        if run.status != RUNNING:
            raise RunStateError(f"Run {run_id} is {run.status}; only running runs can be finalized")

        metrics = self.metrics.compute(run_id)
        run = self.runs.finalize(
            run_id,
            metrics,
            items_processed=self.results.count_by_run(run_id),
            csv_file=artifact_paths.csv_file if artifact_paths else None,
            json_file=artifact_paths.json_file if artifact_paths else None,
        )
        logger.info(
            "Run %s completed: %d items, accuracy=%s precision=%s recall=%s f1=%s",
            run_id,
            run.items_processed,
            metrics.accuracy,
            metrics.precision,
            metrics.recall,
            metrics.f1,
        )
        return run

    def mark_failed(self, run_id: str, error_message: str) -> None:
        """Set status=failed with the error in notes. Logs instead of raising."""
        try:
            self.session.rollback()
            self.runs.mark_failed(run_id, error_message)
            logger.error("Run %s marked failed: %s", run_id, error_message)
        except Exception:
            logger.exception("Could not mark run %s as failed (%s)", run_id, error_message)

    # ---------------------------------------------------------------- resume

    def resume_run(self, run_id: str, retry_errors_only: bool = False) -> ExecutionResult:
        """
        Continue a running (interrupted) or failed run.

        Completed runs are refused. The resume lock is held for the whole
        resume and released on every exit path. A checksum mismatch leaves
        the run exactly as it was.
        """
        run = self.runs.require(run_id)
        if run.status == COMPLETED:
            raise RunStateError(f"Run {run_id} is completed and cannot be resumed")

        mode = RETRY_ERRORS_ONLY if retry_errors_only else NORMAL

        with self.guard.hold(run_id):
            verify_source_checksum(run, self.corpus.loaded_checksum(run.data_source))
            if not self.corpus.is_loaded(run.data_source):
                raise IntegrityCheckError(f"Corpus for {run.data_source} is no longer loaded")

            if run.status == FAILED:
                logger.info("Reopening failed run %s (was: %s)", run_id, run.notes)
                self.runs.reopen(run_id)

            done = self.results.count_by_run(run_id)
            logger.info(
                "Resuming run %s: %d/%s already processed (%s)",
                run_id,
                done,
                run.total_items if run.total_items is not None else "?",
                mode,
            )
            return self.execute(run_id, mode)

    # ---------------------------------------------------------------- status

    def status(self, run_id: str) -> RunStatusView:
        return describe_run(self.session, run_id)
