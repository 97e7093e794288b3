"""Tests for codecontext.plans.store against the in-memory index."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, call, patch

import pytest

from codecontext.db.models import Record
from codecontext.errors import ConsistencyError, UpstreamServiceError
from codecontext.ingest.embedding_writer import DocumentWriter
from codecontext.plans.models import Plan, PlanStep
from codecontext.plans.store import PlanStore, PollPolicy, plan_id_filter, wait_until_visible
from codecontext.rag.retriever import Retriever


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def store(gateway, embedder, sleep):
    return PlanStore(
        DocumentWriter(gateway, embedder),
        Retriever(gateway, embedder),
        gateway,
        PollPolicy(sleep=sleep),
    )


def _make_plan(plan_id: str = "plan-1", updated: str = "2024-01-01T00:00:00.000Z") -> Plan:
    return Plan(
        id=plan_id,
        title=f"Title of {plan_id}",
        description="",
        steps=[
            PlanStep(id="s1", title="First", created=updated, updated=updated),
            PlanStep(id="s2", title="Second", dependencies=["s1"], created=updated, updated=updated),
        ],
        created=updated,
        updated=updated,
        namespace="shop",
        type="feature",
    )


# ------------------------------------------------------------------
# Polling
# ------------------------------------------------------------------


def test_poll_policy_delays():
    assert PollPolicy().delays() == [1.0, 2.0]
    assert PollPolicy(attempts=3, factor=1.0).delays() == [1.0, 1.0]
    assert PollPolicy(attempts=1).delays() == []


def test_wait_until_visible_returns_first_truthy(sleep):
    check = MagicMock(side_effect=[[], [], ["hit"]])
    assert wait_until_visible(check, PollPolicy(sleep=sleep)) == ["hit"]
    assert sleep.call_args_list == [call(1.0), call(2.0)]


def test_wait_until_visible_gives_up(sleep):
    with pytest.raises(ConsistencyError):
        wait_until_visible(lambda: [], PollPolicy(sleep=sleep))
    assert sleep.call_count == 2


def test_plan_id_filter():
    assert plan_id_filter("p") == {"$and": [{"type": {"$eq": "plan"}}, {"planId": {"$eq": "p"}}]}


# ------------------------------------------------------------------
# store
# ------------------------------------------------------------------


def test_store_writes_single_plan_record(store, fake_index, sleep):
    plan = _make_plan()
    store.store(plan)

    records = fake_index.records("shop")
    assert len(records) == 1
    md = records[0]["metadata"]
    assert md["filename"] == "plan-plan-1.json"
    assert md["type"] == "plan"
    assert md["section"] == "plans"
    assert md["planId"] == "plan-1"
    assert md["status"] == "active"
    assert md["isComplete"] is True
    assert json.loads(md["plan"])["title"] == "Title of plan-1"
    sleep.assert_not_called()


def test_store_tolerates_slow_visibility(store, fake_index, sleep):
    fake_index.lag = 5
    store.store(_make_plan())
    assert sleep.call_args_list == [call(1.0), call(1.0)]
    assert len(fake_index.records("shop")) == 1


def test_store_tolerates_stats_failure(store, fake_index):
    fake_index.fail_on["/describe_index_stats"] = UpstreamServiceError("stats down", status=503)
    store.store(_make_plan())
    assert len(fake_index.records("shop")) == 1


def test_create_from_text(store, fake_index):
    plan = store.create_from_text("## Plan: Cache it\n1. Add redis\n2. Wrap reads", "shop")
    assert plan is not None
    assert plan.namespace == "shop"
    assert fake_index.records("shop")[0]["metadata"]["planId"] == plan.id


def test_create_from_text_without_plan(store, fake_index):
    assert store.create_from_text("No plan in here.", "shop") is None
    assert fake_index.records("shop") == []


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


def test_get_active_plans_newest_first(store):
    store.store(_make_plan("plan-old", "2024-01-01T00:00:00.000Z"))
    store.store(_make_plan("plan-new", "2024-03-01T00:00:00.000Z"))

    plans = store.get_active_plans("shop")
    assert [p.id for p in plans] == ["plan-new", "plan-old"]
    assert plans[0].steps[1].dependencies == ["s1"]


def test_get_active_plans_retries_empty_reads(store, fake_index, sleep):
    store.store(_make_plan())
    fake_index.lag = 2

    plans = store.get_active_plans("shop")
    assert [p.id for p in plans] == ["plan-1"]
    assert sleep.call_args_list == [call(1.0), call(2.0)]


def test_get_active_plans_empty_namespace(store, sleep):
    assert store.get_active_plans("empty") == []
    assert sleep.call_args_list == [call(1.0), call(2.0)]


def test_get_active_plans_skips_unreadable_records(store, gateway):
    store.store(_make_plan())
    for record_id, raw in (("bad-json", "{oops"), ("bad-plan", json.dumps({"id": "x"}))):
        gateway.upsert(
            "shop",
            [
                Record(
                    id=record_id,
                    text=raw,
                    metadata={
                        "filename": f"plan-{record_id}.json",
                        "type": "plan",
                        "section": "plans",
                        "isComplete": True,
                        "plan": raw,
                    },
                    values=[0.0, 0.0, 0.0],
                )
            ],
        )

    assert [p.id for p in store.get_active_plans("shop")] == ["plan-1"]


def test_get_plan(store):
    store.store(_make_plan("plan-a"))
    assert store.get_plan("shop", "plan-a").title == "Title of plan-a"
    assert store.get_plan("shop", "plan-zzz") is None


# ------------------------------------------------------------------
# Updates and deletes
# ------------------------------------------------------------------


def test_update_step_status_replaces_record(store, fake_index):
    plan = _make_plan()
    store.store(plan)

    store.update_step_status(plan, "s1", "completed")

    records = fake_index.records("shop")
    assert len(records) == 1
    stored = json.loads(records[0]["metadata"]["plan"])
    assert stored["steps"][0]["status"] == "completed"
    assert stored["updated"] > "2024-01-01T00:00:00.000Z"


def test_update_waits_for_new_version_before_dropping_old(store, gateway, fake_index, sleep, monkeypatch):
    plan = _make_plan()
    with patch("codecontext.ingest.embedding_writer.time.time", return_value=1700000000.0):
        store.store(plan)
    old_ids = {r["id"] for r in fake_index.records("shop")}

    # the first visibility read after the write only sees the old version
    real_query = gateway.query_by_section
    reads = []

    def lagging_query(namespace, section, extra_filter=None):
        reads.append(section)
        matches = real_query(namespace, section, extra_filter)
        if len(reads) == 2:
            return [m for m in matches if m.id in old_ids]
        return matches

    monkeypatch.setattr(gateway, "query_by_section", lagging_query)
    with patch("codecontext.ingest.embedding_writer.time.time", return_value=1700000005.0):
        store.update_step_status(plan, "s1", "completed")

    assert sleep.call_args_list == [call(1.0)]
    records = fake_index.records("shop")
    assert len(records) == 1
    assert records[0]["id"] not in old_ids
    assert json.loads(records[0]["metadata"]["plan"])["steps"][0]["status"] == "completed"


def test_update_all_steps_completes_plan(store, fake_index):
    plan = _make_plan()
    store.store(plan)
    store.update_step_status(plan, "s1", "completed")
    store.update_step_status(plan, "s2", "completed")

    assert plan.status == "completed"
    assert fake_index.records("shop")[0]["metadata"]["status"] == "completed"


def test_update_step_status_unknown_step(store):
    plan = _make_plan()
    with pytest.raises(KeyError):
        store.update_step_status(plan, "nope", "completed")


def test_delete_plan(store, fake_index):
    keep, drop = _make_plan("plan-keep"), _make_plan("plan-drop")
    store.store(keep)
    store.store(drop)

    assert store.delete_plan(drop) == 1
    assert [r["metadata"]["planId"] for r in fake_index.records("shop")] == ["plan-keep"]


def test_delete_plan_propagates_failure(store, fake_index):
    plan = _make_plan()
    store.store(plan)
    fake_index.fail_on["/vectors/delete"] = UpstreamServiceError("delete failed", status=500)
    with pytest.raises(UpstreamServiceError):
        store.delete_plan(plan)
