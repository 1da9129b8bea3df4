"""One-shot CSV import into the corpus store."""

from __future__ import annotations

import csv
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from caselens.db.schema import CorpusRecord, utcnow
from caselens.errors import ConfigurationError
from caselens.repos.corpus_repo import CorpusRepository
from caselens.services.integrity import compute_source_checksum

logger = logging.getLogger(__name__)

LONG_COLUMNS = ("entity_id", "subtype", "text")
TEXT_PREFIX = "text_"
LABEL_PREFIX = "label_"

_TRUE_LABELS = {"1", "true", "yes", "y", "t"}
_FALSE_LABELS = {"0", "false", "no", "n", "f"}


@dataclass(frozen=True)
class CorpusRow:
    entity_id: str
    subtype: str
    text: str
    ground_truth: Optional[bool]
    entity_ground_truth: Optional[bool]


def source_tag_for(source: str | Path) -> str:
    """Records and runs refer to a source by its absolute path."""
    return str(Path(source).resolve())


def parse_label(raw: Optional[str]) -> Optional[bool]:
    """
    Map a label cell to bool.
    Rule: 1/true/yes -> True, 0/false/no -> False, blank -> None.
    """
    if raw is None:
        return None
    value = str(raw).strip().lower()
    if not value or value in {"na", "nan", "null", "none"}:
        return None
    if value.endswith(".0"):
        value = value[:-2]
    if value in _TRUE_LABELS:
        return True
    if value in _FALSE_LABELS:
        return False
    raise ConfigurationError(f"Unrecognized label value: {raw!r}")


def _long_rows(rows: Iterable[Dict[str, str]]) -> List[CorpusRow]:
    out: List[CorpusRow] = []
    for row in rows:
        out.append(
            CorpusRow(
                entity_id=str(row["entity_id"]).strip(),
                subtype=str(row["subtype"]).strip().lower(),
                text=row.get("text") or "",
                ground_truth=parse_label(row.get("label")),
                entity_ground_truth=parse_label(row.get("entity_label")),
            )
        )
    return out


def _wide_rows(rows: Iterable[Dict[str, str]], text_columns: List[str]) -> List[CorpusRow]:
    """Pivot one-row-per-case into one record per (entity, subtype)."""
    out: List[CorpusRow] = []
    for row in rows:
        entity_id = str(row["entity_id"]).strip()
        entity_label = parse_label(row.get("label"))
        for col in text_columns:
            subtype = col[len(TEXT_PREFIX):].lower()
            out.append(
                CorpusRow(
                    entity_id=entity_id,
                    subtype=subtype,
                    text=row.get(col) or "",
                    ground_truth=parse_label(row.get(f"{LABEL_PREFIX}{col[len(TEXT_PREFIX):]}")),
                    entity_ground_truth=entity_label,
                )
            )
    return out


def read_corpus_csv(path: str | Path) -> List[CorpusRow]:
    """
    Read a corpus CSV in long or wide layout, dropping blank texts.

    long: entity_id, subtype, text[, label][, entity_label]
    wide: entity_id, text_<subtype>..., [label_<subtype>...], [label]
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Data file not found: {path}")

    with path.open("r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        columns = [c.strip() for c in (reader.fieldnames or [])]
        reader.fieldnames = columns
        rows = list(reader)

    if "entity_id" not in columns:
        raise ConfigurationError(f"{path}: missing required column 'entity_id'")

    if all(c in columns for c in LONG_COLUMNS):
        records = _long_rows(rows)
    else:
        text_columns = [c for c in columns if c.startswith(TEXT_PREFIX)]
        if not text_columns:
            raise ConfigurationError(
                f"{path}: expected columns {', '.join(LONG_COLUMNS)} or one or more '{TEXT_PREFIX}<subtype>' columns"
            )
        records = _wide_rows(rows, text_columns)

    kept = [r for r in records if r.entity_id and r.text.strip()]
    if len(kept) < len(records):
        logger.info("Dropped %d blank records from %s", len(records) - len(kept), path)

    seen = set()
    for r in kept:
        key = (r.entity_id, r.subtype)
        if key in seen:
            raise ConfigurationError(f"{path}: duplicate record for entity {r.entity_id} / {r.subtype}")
        seen.add(key)

    return kept


def is_loaded(session: Session, source: str | Path) -> bool:
    return CorpusRepository(session).is_loaded(source_tag_for(source))


def load_corpus(session: Session, source: str | Path, force_reload: bool = False) -> int:
    """
    Load a CSV into corpus_records.

    Already-loaded sources are left alone (returns the existing count)
    unless force_reload, which deletes that source's records first. A
    source whose file changed since it was loaded is refused without
    force_reload: the store would no longer match the file.

    The sha256 of the file is recorded with the load.
    """
    repo = CorpusRepository(session)
    tag = source_tag_for(source)
    if not Path(tag).exists():
        raise ConfigurationError(f"Data file not found: {tag}")
    checksum = compute_source_checksum(tag)

    existing = repo.count_by_source(tag)
    if existing and not force_reload:
        loaded = repo.loaded_checksum(tag)
        if loaded is not None and loaded != checksum:
            raise ConfigurationError(
                f"{tag} changed since it was loaded; reload it with --force"
            )
        logger.info("Corpus already loaded from %s (%d records)", tag, existing)
        return existing
    if existing and force_reload:
        removed = repo.delete_by_source(tag)
        logger.info("Removed %d existing records from %s", removed, tag)

    rows = read_corpus_csv(tag)
    loaded_at = utcnow()
    for r in rows:
        clash = repo.get_by_key(r.entity_id, r.subtype)
        if clash is not None:
            raise ConfigurationError(
                f"Record {r.entity_id} / {r.subtype} already loaded from {clash.source_tag}"
            )

    n = repo.insert_batch(
        [
            CorpusRecord(
                entity_id=r.entity_id,
                subtype=r.subtype,
                text=r.text,
                ground_truth=r.ground_truth,
                entity_ground_truth=r.entity_ground_truth,
                source_tag=tag,
                loaded_at=loaded_at,
            )
            for r in rows
        ]
    )
    repo.record_source(tag, checksum, n)
    logger.info("Loaded %d records from %s", n, tag)
    return n
