"""Shared test doubles."""

import json

from caselens.services.classifier import ClassifierReply


def verdict(detected, confidence=0.9, indicators=None, rationale="ok") -> str:
    return json.dumps(
        {
            "detected": detected,
            "confidence": confidence,
            "indicators": indicators or [],
            "rationale": rationale,
        }
    )


class ScriptedClassifier:
    """
    Classifier double keyed by record text.

    script maps text -> reply string or exception instance; anything not in
    the script gets `default`.
    """

    def __init__(self, script=None, default=None):
        self.script = dict(script or {})
        self.default = default if default is not None else verdict(False)
        self.calls = []

    def classify(self, text, model, temperature, prompt):
        self.calls.append(text)
        reply = self.script.get(text, self.default)
        if isinstance(reply, BaseException):
            raise reply
        return ClassifierReply(text=reply, prompt_tokens=10, completion_tokens=5, total_tokens=15)


def record_text(entity_id, subtype) -> str:
    return f"text {entity_id} {subtype}"


def ten_item_rows():
    # E01..E10, one channel each, even entities labelled positive
    return [(f"E{i:02d}", "cme", i % 2 == 0) for i in range(1, 11)]
