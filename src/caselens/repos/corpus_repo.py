"""Corpus repository."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from caselens.db.schema import CorpusRecord, CorpusSource, utcnow


class CorpusRepository:
    """
    Repository for corpus_records table operations.

    Runs only ever read from here; writes come from the corpus loader.
    """

    def __init__(self, session: Session):
        self.session = session

    def count_by_source(self, source_tag: str) -> int:
        return int(
            self.session.execute(
                select(func.count())
                .select_from(CorpusRecord)
                .where(CorpusRecord.source_tag == source_tag)
            ).scalar_one()
        )

    def is_loaded(self, source_tag: str) -> bool:
        return self.count_by_source(source_tag) > 0

    def list_slice(self, source_tag: str, limit: Optional[int] = None) -> List[CorpusRecord]:
        """Records of a source in load order, truncated to `limit` when given."""
        stmt = (
            select(CorpusRecord)
            .where(CorpusRecord.source_tag == source_tag)
            .order_by(CorpusRecord.record_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def get_by_key(self, entity_id: str, subtype: str) -> Optional[CorpusRecord]:
        return (
            self.session.query(CorpusRecord)
            .filter(CorpusRecord.entity_id == entity_id, CorpusRecord.subtype == subtype)
            .first()
        )

    def insert_batch(self, records: List[CorpusRecord]) -> int:
        """Assign record ids (max+1 onwards), insert and commit."""
        if not records:
            return 0

        next_id = int(
            self.session.execute(
                select(func.coalesce(func.max(CorpusRecord.record_id), 0))
            ).scalar_one()
        ) + 1

        for offset, record in enumerate(records):
            record.record_id = next_id + offset

        self.session.add_all(records)
        self.session.commit()
        return len(records)

    def delete_by_source(self, source_tag: str) -> int:
        """
        Delete all records of a source.

        DuckDB does NOT reliably return rowcount for DELETE statements,
        so the count is taken first.
        """
        count = self.count_by_source(source_tag)
        self.session.execute(delete(CorpusRecord).where(CorpusRecord.source_tag == source_tag))
        self.session.execute(delete(CorpusSource).where(CorpusSource.source_tag == source_tag))
        self.session.commit()
        return count

    def loaded_checksum(self, source_tag: str) -> Optional[str]:
        """sha256 of the source file as it was when its records were loaded."""
        source = self.session.get(CorpusSource, source_tag)
        return source.checksum if source is not None else None

    def record_source(self, source_tag: str, checksum: str, n_records: int) -> CorpusSource:
        source = self.session.get(CorpusSource, source_tag)
        if source is None:
            source = CorpusSource(source_tag=source_tag)
            self.session.add(source)
        source.checksum = checksum
        source.n_records = n_records
        source.loaded_at = utcnow()
        self.session.commit()
        return source
