"""Tests for DocumentWriter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from codecontext.errors import UpstreamServiceError
from codecontext.ingest.chunker import FileChunker
from codecontext.ingest.embedding_writer import DocumentWriter, record_id


# ------------------------------------------------------------------
# record_id
# ------------------------------------------------------------------


def test_record_id_complete():
    md = {"isComplete": True, "section": "full"}
    assert record_id("src/a.py", md, epoch_ms=1700000000000) == "src/a.py-full-1700000000000"


def test_record_id_chunk():
    md = {"isComplete": False, "chunkIndex": 3}
    assert record_id("src/a.py", md, epoch_ms=1700000000000) == "src/a.py-chunk-3-1700000000000"


# ------------------------------------------------------------------
# write()
# ------------------------------------------------------------------


def test_write_upserts_every_record_with_text_in_metadata(gateway, fake_index, embedder):
    writer = DocumentWriter(gateway, embedder)
    result = writer.write("proj", "def f():\n    pass\n", "src/f.py")

    stored = fake_index.records("proj")
    assert result.records_written == 2
    assert {r["id"] for r in stored} == set(result.ids)
    complete = next(r for r in stored if r["metadata"]["isComplete"])
    assert complete["metadata"]["text"] == "def f():\n    pass\n"
    assert complete["metadata"]["section"] == "full"
    assert complete["values"] == embedder("def f():\n    pass\n")


def test_write_is_one_upsert_per_record(gateway, fake_index, embedder):
    writer = DocumentWriter(gateway, embedder, chunker=FileChunker(chunk_size=10, overlap=0))
    writer.write("proj", "a" * 35, "src/a.py")

    upserts = [payload for path, payload in fake_index.calls if path == "/vectors/upsert"]
    assert len(upserts) == 5  # complete + 4 chunks
    assert all(len(p["vectors"]) == 1 for p in upserts)


def test_caller_metadata_overrides_chunk_metadata(gateway, fake_index, embedder):
    writer = DocumentWriter(gateway, embedder)
    writer.write(
        "proj",
        '{"id": "p1"}',
        "plan-p1.json",
        metadata={"section": "plans", "planId": "p1", "status": "active"},
    )
    (record,) = fake_index.records("proj")
    assert record["metadata"]["section"] == "plans"
    assert record["metadata"]["planId"] == "p1"
    assert record["metadata"]["filename"] == "plan-p1.json"


def test_progress_callback_reports_each_record(gateway, embedder):
    progress = MagicMock()
    DocumentWriter(gateway, embedder).write("proj", "x = 1\n", "x.py", on_progress=progress)
    assert [c.args for c in progress.call_args_list] == [(1, 2), (2, 2)]


def test_failure_mid_file_leaves_partial_records(gateway, fake_index):
    calls = {"n": 0}

    def flaky_embed(text):
        calls["n"] += 1
        if calls["n"] == 2:
            raise UpstreamServiceError("Failed to get embeddings: boom", status=500)
        return [0.1, 0.2, 0.3]

    writer = DocumentWriter(gateway, flaky_embed)
    with pytest.raises(UpstreamServiceError):
        writer.write("proj", "x = 1\n", "x.py")
    assert len(fake_index.records("proj")) == 1


def test_ids_use_write_time_millis(gateway, embedder):
    with patch("codecontext.ingest.embedding_writer.time.time", return_value=1700000000.5):
        result = DocumentWriter(gateway, embedder).write("proj", "x = 1\n", "x.py")
    assert result.ids == ["x.py-full-1700000000500", "x.py-chunk-0-1700000000500"]
