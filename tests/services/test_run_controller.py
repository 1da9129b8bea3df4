"""Unit tests for the settings a resumed run is rebuilt with."""

import json

from caselens.config.settings import Settings
from caselens.db.schema import Run
from caselens.services.classifier import ChatCompletionsClassifier, get_classifier
from caselens.services.run_controller import settings_for_run


def _run(snapshot_settings):
    return Run(
        run_id="r1",
        model_provider="openai_compatible",
        api_url="http://stored:1234/v1/chat/completions",
        config_json=json.dumps({"settings": snapshot_settings}),
    )


def test_stored_snapshot_wins_over_environment():
    env = Settings(
        llm_timeout_s=30.0,
        classifier_max_retries=0,
        classifier_backoff_s=0.5,
        llm_api_key="from-env",
        progress_every=5,
    )
    run = _run(
        {
            "llm_provider": "openai_compatible",
            "llm_api_url": "http://stored:1234/v1/chat/completions",
            "llm_timeout_s": 7.0,
            "classifier_max_retries": 3,
            "classifier_backoff_s": 2.0,
            "progress_every": 10,
        }
    )

    merged = settings_for_run(run, env)
    clf = get_classifier(merged, provider=run.model_provider, api_url=run.api_url)

    assert isinstance(clf, ChatCompletionsClassifier)
    assert clf.timeout_s == 7.0
    assert clf.max_retries == 3
    assert clf.backoff_s == 2.0
    assert clf.api_url == "http://stored:1234/v1/chat/completions"
    # never stored, so it still comes from the environment
    assert clf.api_key == "from-env"
    assert merged.progress_every == 10
    assert env.llm_timeout_s == 30.0


def test_run_without_snapshot_keeps_environment():
    env = Settings(llm_timeout_s=12.0)
    run = Run(run_id="r2", config_json="{}")
    assert settings_for_run(run, env).llm_timeout_s == 12.0

    run.config_json = "not json"
    assert settings_for_run(run, env).llm_timeout_s == 12.0


def test_stored_api_key_is_ignored():
    env = Settings(llm_api_key="from-env")
    run = _run({"llm_api_key": "leaked"})
    assert settings_for_run(run, env).llm_api_key == "from-env"
