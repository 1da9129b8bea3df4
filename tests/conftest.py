"""Global test fixtures."""

import csv
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from caselens.config.experiment import load_experiment_config  # noqa: E402
from caselens.config.settings import Settings  # noqa: E402
from caselens.db.init_db import init_db  # noqa: E402
from helpers import record_text  # noqa: E402


@pytest.fixture
def db_url(tmp_path):
    return f"duckdb:///{tmp_path / 'caselens_test.duckdb'}"


@pytest.fixture
def engine(db_url):
    engine = create_engine(db_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def test_settings(tmp_path, db_url):
    return Settings(
        db_url=db_url,
        llm_provider="stub",
        lock_dir=str(tmp_path / "locks"),
        reports_dir=str(tmp_path / "reports"),
        log_dir=str(tmp_path / "logs"),
        progress_every=2,
    )


@pytest.fixture
def write_corpus(tmp_path):
    """Write a long-layout corpus CSV: rows of (entity_id, subtype, label)."""

    def _write(rows, name="corpus.csv"):
        path = tmp_path / name
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["entity_id", "subtype", "text", "label", "entity_label"])
            for entity_id, subtype, label in rows:
                writer.writerow(
                    [entity_id, subtype, record_text(entity_id, subtype), "" if label is None else int(label), ""]
                )
        return path

    return _write


@pytest.fixture
def write_config(tmp_path):
    """Write an experiment YAML pointing at `data_file` and load it."""

    def _write(data_file, max_items=None, save_csv_json=False, name="experiment.yaml"):
        run_block = f"  max_items: {max_items}\n" if max_items else ""
        path = tmp_path / name
        path.write_text(
            "experiment:\n"
            "  name: test-run\n"
            "  author: tester\n"
            "model:\n"
            "  name: test-model\n"
            "  provider: stub\n"
            "  temperature: 0.0\n"
            "prompt:\n"
            "  version: v1\n"
            "  system_prompt: You classify case narratives.\n"
            "  user_template: 'Narrative: <<TEXT>>'\n"
            f"data:\n  file: {data_file}\n"
            "run:\n"
            "  seed: 123\n"
            f"  save_csv_json: {'true' if save_csv_json else 'false'}\n"
            f"{run_block}",
            encoding="utf-8",
        )
        return load_experiment_config(path)

    return _write
