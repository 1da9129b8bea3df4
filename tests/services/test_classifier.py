"""Unit tests for the chat-completions classifier."""

import json

import httpx
import pytest

from caselens.config.settings import Settings
from caselens.errors import ClassifierError, ConfigurationError
from caselens.services.classifier import (
    ChatCompletionsClassifier,
    PromptSpec,
    StubClassifier,
    get_classifier,
)

PROMPT = PromptSpec(system_prompt="sys", user_template="Narrative: <<TEXT>>")
URL = "http://llm.test/v1/chat/completions"


def _ok_body(content='{"detected": true}'):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
    }


def _classifier(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return ChatCompletionsClassifier(api_url=URL, client=client, sleep=lambda s: None, **kwargs)


def test_builds_messages_and_reads_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=_ok_body())

    reply = _classifier(handler, api_key="k").classify("she was hit", "m1", 0.3, PROMPT)

    assert reply.text == '{"detected": true}'
    assert reply.total_tokens == 16
    assert seen["body"]["model"] == "m1"
    assert seen["body"]["temperature"] == 0.3
    assert seen["body"]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "Narrative: she was hit"},
    ]
    assert seen["auth"] == "Bearer k"


def test_http_error_raises():
    clf = _classifier(lambda request: httpx.Response(500, text="down"))
    with pytest.raises(httpx.HTTPStatusError):
        clf.classify("x", "m", 0.0, PROMPT)


def test_empty_content_raises_classifier_error():
    clf = _classifier(lambda request: httpx.Response(200, json=_ok_body(content="")))
    with pytest.raises(ClassifierError):
        clf.classify("x", "m", 0.0, PROMPT)


def test_bad_structure_raises_classifier_error():
    clf = _classifier(lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(ClassifierError):
        clf.classify("x", "m", 0.0, PROMPT)


def test_bounded_retry_then_success():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=_ok_body())

    reply = _classifier(handler, max_retries=2).classify("x", "m", 0.0, PROMPT)
    assert reply.text
    assert calls["n"] == 3


def test_no_retry_by_default():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        _classifier(handler).classify("x", "m", 0.0, PROMPT)
    assert calls["n"] == 1


def test_factory():
    assert isinstance(get_classifier(Settings(llm_provider="stub")), StubClassifier)
    clf = get_classifier(Settings(llm_provider="stub"), provider="ollama", api_url=URL)
    assert isinstance(clf, ChatCompletionsClassifier)
    assert clf.api_url == URL
    with pytest.raises(ConfigurationError):
        get_classifier(Settings(llm_provider="carrier-pigeon"))
