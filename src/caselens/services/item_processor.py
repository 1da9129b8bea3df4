"""Classify one corpus record and write its result row."""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from caselens.db.schema import CorpusRecord, Result, Run, utcnow
from caselens.models.domain import ParseFailure, ParseSuccess
from caselens.repos.result_repo import ResultRepository
from caselens.services.classifier import Classifier, ClassifierReply, PromptSpec
from caselens.services.response_parser import ParseOutcome, parse_response

logger = logging.getLogger(__name__)

TRANSPORT = "transport"
PARSE = "parse"


def correctness_flags(detected: Optional[bool], truth: Optional[bool]) -> dict:
    """Exactly one of TP/TN/FP/FN is True when both sides are known; all None otherwise."""
    if detected is None or truth is None:
        return {
            "is_true_positive": None,
            "is_true_negative": None,
            "is_false_positive": None,
            "is_false_negative": None,
        }
    return {
        "is_true_positive": detected and truth,
        "is_true_negative": (not detected) and (not truth),
        "is_false_positive": detected and not truth,
        "is_false_negative": (not detected) and truth,
    }


class ItemProcessor:
    """
    Runs the classifier + parser for one record and persists exactly one row.

    Transport and parse failures become error-flagged rows; only store
    errors propagate.
    """

    def __init__(
        self,
        session: Session,
        classifier: Classifier,
        parser: Callable[[str], ParseOutcome] = parse_response,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.session = session
        self.classifier = classifier
        self.parser = parser
        self.clock = clock
        self.results = ResultRepository(session)

    def _build_row(self, run: Run, record: CorpusRecord, row_num: Optional[int]) -> Result:
        prompt = PromptSpec(system_prompt=run.system_prompt, user_template=run.user_template)
        row = Result(
            run_id=run.run_id,
            entity_id=record.entity_id,
            subtype=record.subtype,
            row_num=row_num,
            ground_truth=record.ground_truth,
            entity_ground_truth=record.entity_ground_truth,
            indicators_json="[]",
            error_occurred=False,
        )

        started = self.clock()
        try:
            reply: ClassifierReply = self.classifier.classify(
                record.text, run.model_name, run.temperature, prompt
            )
        except Exception as e:
            row.response_sec = self.clock() - started
            row.error_occurred = True
            row.error_kind = TRANSPORT
            row.error_message = f"transport failure: {type(e).__name__}: {e}"
            row.processed_at = utcnow()
            for key, value in correctness_flags(None, None).items():
                setattr(row, key, value)
            return row

        row.response_sec = self.clock() - started
        row.raw_response = reply.text
        row.prompt_tokens = reply.prompt_tokens
        row.completion_tokens = reply.completion_tokens
        row.total_tokens = reply.total_tokens

        outcome = self.parser(reply.text)
        if isinstance(outcome, ParseFailure):
            row.error_occurred = True
            row.error_kind = PARSE
            row.error_message = f"parse failure: {outcome.message}"
            flags = correctness_flags(None, None)
        elif isinstance(outcome, ParseSuccess):
            row.detected = outcome.detected
            row.confidence = outcome.confidence
            row.indicators_json = json.dumps(list(outcome.indicators))
            row.rationale = outcome.rationale
            flags = correctness_flags(outcome.detected, record.ground_truth)
        else:
            raise TypeError(f"Parser returned {type(outcome).__name__}")

        for key, value in flags.items():
            setattr(row, key, value)
        row.processed_at = utcnow()
        return row

    def process(
        self,
        run: Run,
        record: CorpusRecord,
        row_num: Optional[int] = None,
        replace_errored: bool = False,
    ) -> Result:
        """
        Process one record for a run.

        Without replace_errored an existing row for the key is returned as-is
        (no second row, no second classifier call). With it, an existing
        errored row is overwritten in place; a successful row is left alone.
        """
        existing = self.results.get_by_key(run.run_id, record.entity_id, record.subtype)
        if existing is not None and not (replace_errored and existing.error_occurred):
            logger.debug("Skipping %s/%s: already has a result", record.entity_id, record.subtype)
            return existing

        row = self._build_row(run, record, row_num)

        if existing is not None:
            saved = self.results.supersede(existing, row)
        else:
            saved, created = self.results.insert(row)
            if not created:
                logger.warning(
                    "Result for %s/%s was written concurrently; keeping the stored row",
                    record.entity_id,
                    record.subtype,
                )

        if saved.error_occurred:
            logger.warning("Item %s/%s errored: %s", record.entity_id, record.subtype, saved.error_message)
        else:
            logger.debug(
                "Item %s/%s detected=%s confidence=%s",
                record.entity_id,
                record.subtype,
                saved.detected,
                saved.confidence,
            )
        return saved
