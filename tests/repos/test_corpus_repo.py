"""Unit tests for CorpusRepository."""

from caselens.db.schema import CorpusRecord
from caselens.repos.corpus_repo import CorpusRepository


def _rec(entity_id, source="s1"):
    return CorpusRecord(entity_id=entity_id, subtype="cme", text=f"t {entity_id}", source_tag=source)


def test_insert_assigns_sequential_ids_across_batches(session):
    repo = CorpusRepository(session)
    assert repo.insert_batch([_rec("A"), _rec("B")]) == 2
    repo.insert_batch([_rec("C", source="s2")])

    assert [r.record_id for r in repo.list_slice("s1")] == [1, 2]
    assert [r.record_id for r in repo.list_slice("s2")] == [3]


def test_slice_limit_and_counts(session):
    repo = CorpusRepository(session)
    repo.insert_batch([_rec(e) for e in "ABCDE"])

    assert [r.entity_id for r in repo.list_slice("s1", limit=3)] == ["A", "B", "C"]
    assert repo.count_by_source("s1") == 5
    assert repo.is_loaded("s1")
    assert not repo.is_loaded("s2")


def test_delete_by_source_returns_count(session):
    repo = CorpusRepository(session)
    repo.insert_batch([_rec("A"), _rec("B"), _rec("C", source="s2")])

    assert repo.delete_by_source("s1") == 2
    assert repo.count_by_source("s1") == 0
    assert repo.count_by_source("s2") == 1


def test_source_checksum_recorded_and_cleared(session):
    repo = CorpusRepository(session)
    assert repo.loaded_checksum("s1") is None

    repo.insert_batch([_rec("A")])
    repo.record_source("s1", "abc", 1)
    repo.record_source("s1", "def", 1)
    assert repo.loaded_checksum("s1") == "def"

    repo.delete_by_source("s1")
    assert repo.loaded_checksum("s1") is None
