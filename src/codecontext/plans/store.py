"""Plan persistence on top of the vector index.

A plan is one complete record in the ``plans`` section:
  filename  plan-<id>.json
  text      the plan JSON (also embedded)
  metadata  {type: plan, section: plans, planId, status, plan: <json>, isComplete: true}

The index is eventually consistent, so writes are followed by a bounded
visibility poll and an empty read is retried before it is believed. Neither
is fatal: a plan that is not visible yet is logged and the caller moves on.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

from codecontext.db.models import utc_timestamp
from codecontext.db.pinecone import PineconeGateway
from codecontext.errors import ConsistencyError, UpstreamServiceError
from codecontext.ingest.embedding_writer import DocumentWriter, WriteResult
from codecontext.plans.models import Plan, StepStatus
from codecontext.plans.parser import extract_plan
from codecontext.rag.retriever import Retriever

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLANS_QUERY = "list all plans"


def plan_filter() -> dict[str, Any]:
    return {"type": {"$eq": "plan"}}


def plan_id_filter(plan_id: str) -> dict[str, Any]:
    return {"$and": [{"type": {"$eq": "plan"}}, {"planId": {"$eq": plan_id}}]}


# ------------------------------------------------------------------
# Bounded polling
# ------------------------------------------------------------------


@dataclass
class PollPolicy:
    """Bounded retry schedule for reads against an eventually consistent index.

    Attributes:
        attempts: Total reads, including the first one.
        initial_delay: Seconds slept after the first empty read.
        factor: Multiplier applied to the delay after each further empty read.
        sleep: Sleep function (patched in tests).
    """

    attempts: int = 3
    initial_delay: float = 1.0
    factor: float = 2.0
    sleep: Callable[[float], None] = time.sleep

    def delays(self) -> list[float]:
        """Delays slept between attempts (one fewer than ``attempts``)."""
        out: list[float] = []
        delay = self.initial_delay
        for _ in range(max(self.attempts - 1, 0)):
            out.append(delay)
            delay *= self.factor
        return out


def wait_until_visible(check: Callable[[], T], policy: PollPolicy) -> T:
    """Call *check* until it returns something truthy, sleeping per *policy*.

    Raises:
        ConsistencyError: If every attempt came back empty.
    """
    delays = policy.delays()
    for attempt in range(policy.attempts):
        result = check()
        if result:
            return result
        if attempt < len(delays):
            logger.debug("Not visible yet (attempt %d/%d)", attempt + 1, policy.attempts)
            policy.sleep(delays[attempt])
    raise ConsistencyError(f"Not visible after {policy.attempts} attempt(s)")


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


class PlanStore:
    """Create, list, update and delete plans in one index.

    Args:
        writer: Document writer used to embed and upsert plan records.
        retriever: Retriever used for plan listing.
        gateway: Gateway used for visibility checks and deletes.
        poll: Polling schedule; writes poll at a fixed interval, reads back off.
    """

    def __init__(
        self,
        writer: DocumentWriter,
        retriever: Retriever,
        gateway: PineconeGateway,
        poll: PollPolicy | None = None,
    ) -> None:
        self._writer = writer
        self._retriever = retriever
        self._gateway = gateway
        self.poll = poll or PollPolicy()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(self, plan: Plan) -> WriteResult:
        """Write *plan* as a single complete record and wait for it to show up."""
        plan_json = plan.to_json()
        metadata = {
            "type": "plan",
            "section": "plans",
            "planId": plan.id,
            "status": plan.status,
            "plan": plan_json,
            "isComplete": True,
        }
        result = self._writer.write(plan.namespace, plan_json, plan.filename, metadata=metadata)

        written = set(result.ids)
        try:
            wait_until_visible(
                lambda: [m for m in self._plan_records(plan) if m.id in written],
                replace(self.poll, factor=1.0),
            )
        except ConsistencyError:
            logger.warning("Plan %s not visible in '%s' yet", plan.id, plan.namespace)

        try:
            stats = self._gateway.describe_namespace(plan.namespace)
            logger.debug(
                "Namespace '%s' after plan write: %s", plan.namespace, stats.get("namespaceStats")
            )
        except UpstreamServiceError as exc:
            logger.debug("Namespace stats unavailable after plan write: %s", exc)

        logger.info("Stored plan %s (%s) in '%s'", plan.id, plan.title, plan.namespace)
        return result

    def create_from_text(self, text: str, namespace: str) -> Plan | None:
        """Extract a plan from assistant *text* and store it; None when there is none."""
        plan = extract_plan(text, namespace=namespace)
        if plan is None:
            return None
        self.store(plan)
        return plan

    def update(self, plan: Plan) -> Plan:
        """Store a new version of *plan*, then drop the records of older versions."""
        previous = [m.id for m in self._plan_records(plan)]
        plan.updated = utc_timestamp()
        written = set(self.store(plan).ids)
        stale = [record_id for record_id in previous if record_id not in written]
        if stale:
            self._gateway.delete_ids(plan.namespace, stale)
            logger.debug("Removed %d stale record(s) of plan %s", len(stale), plan.id)
        return plan

    def update_step_status(self, plan: Plan, step_id: str, status: StepStatus) -> Plan:
        """Change one step's status and persist the plan.

        Raises:
            KeyError: If *step_id* is not a step of *plan*.
            ValueError: If *status* is not a step status.
        """
        plan.with_step_status(step_id, status)
        return self.update(plan)

    def delete_plan(self, plan: Plan) -> int:
        """Delete every record of *plan*. Returns the number of records removed."""
        deleted = self._gateway.delete_by_filter(plan.namespace, plan_id_filter(plan.id))
        logger.info("Deleted plan %s from '%s'", plan.id, plan.namespace)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_active_plans(self, namespace: str) -> list[Plan]:
        """Every plan stored in *namespace*, most recently updated first.

        An empty result is retried per the read policy before it is returned.
        """
        try:
            return wait_until_visible(lambda: self._read_plans(namespace), self.poll)
        except ConsistencyError:
            logger.info("No plans found in '%s'", namespace)
            return []

    def get_plan(self, namespace: str, plan_id: str) -> Plan | None:
        return next((p for p in self.get_active_plans(namespace) if p.id == plan_id), None)

    def _plan_records(self, plan: Plan):
        return self._gateway.query_by_section(plan.namespace, "plans", {"planId": {"$eq": plan.id}})

    def _read_plans(self, namespace: str) -> list[Plan]:
        """One plan per ``plan-<id>.json`` file.

        Every version of a plan shares that filename, so the filename dedup
        (first complete record seen wins) picks the version returned; update()
        removes the older records right after the new one is visible.
        """
        matches = self._retriever.query_context(namespace, PLANS_QUERY, filter=plan_filter())
        plans: list[Plan] = []
        for match in matches:
            raw = match.metadata.get("plan")
            if not raw:
                continue
            try:
                plan = Plan.from_json(raw)
            except json.JSONDecodeError:
                logger.warning("Skipping record %s: stored plan is not valid JSON", match.id)
                continue
            if plan is None:
                logger.warning("Skipping record %s: stored plan is incomplete", match.id)
                continue
            plans.append(plan)
        return sorted(plans, key=lambda p: p.updated, reverse=True)
