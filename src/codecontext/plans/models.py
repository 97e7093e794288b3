"""Plan and PlanStep models with JSON (de)serialization.

Plan status is derived from step statuses: every step completed → completed,
any step failed → cancelled, otherwise active. Callers only set it directly
on creation.
"""

from __future__ import annotations

import json
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from codecontext.db.models import utc_timestamp

PlanStatus = Literal["active", "completed", "cancelled"]
StepStatus = Literal["pending", "in_progress", "completed", "failed"]
PlanType = Literal["refactor", "feature", "bug", "other"]

PLAN_TYPES: tuple[str, ...] = ("refactor", "feature", "bug", "other")
STEP_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed", "failed")
PLAN_STATUSES: tuple[str, ...] = ("active", "completed", "cancelled")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str) -> str:
    """``<prefix>-<epochMillis>-<random base36>-<3 digits>``."""
    millis = int(time.time() * 1000)
    token = "".join(random.choices(_ID_ALPHABET, k=11))
    counter = f"{random.randrange(1000):03d}"
    return f"{prefix}-{millis}-{token}-{counter}"


@dataclass
class PlanStep:
    id: str
    title: str
    description: str = ""
    status: StepStatus = "pending"
    dependencies: list[str] = field(default_factory=list)
    created: str = ""
    updated: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "dependencies": list(self.dependencies),
            "created": self.created,
            "updated": self.updated,
            "metadata": dict(self.metadata),
        }


@dataclass
class Plan:
    id: str
    title: str
    description: str
    steps: list[PlanStep]
    status: PlanStatus = "active"
    created: str = ""
    updated: str = ""
    namespace: str = ""
    type: PlanType = "other"
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return f"plan-{self.id}.json"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "steps": [s.to_dict() for s in self.steps],
            "status": self.status,
            "created": self.created,
            "updated": self.updated,
            "namespace": self.namespace,
            "type": self.type,
            "metadata": dict(self.metadata),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Plan | None":
        return validate_plan(raw)

    @classmethod
    def from_json(cls, raw: str) -> "Plan | None":
        """Parse and validate a stored plan; None when the JSON is not a valid plan.

        Raises:
            json.JSONDecodeError: If *raw* is not JSON at all.
        """
        return cls.from_dict(json.loads(raw))

    def with_step_status(self, step_id: str, status: StepStatus) -> "Plan":
        """Set one step's status, bump timestamps and re-derive the plan status.

        Raises:
            KeyError: If no step has *step_id*.
            ValueError: If *status* is not a step status.
        """
        if status not in STEP_STATUSES:
            raise ValueError(f"Unknown step status: {status!r}")
        now = utc_timestamp()
        for step in self.steps:
            if step.id == step_id:
                step.status = status
                step.updated = now
                break
        else:
            raise KeyError(step_id)
        self.status = derive_status(self.steps)
        self.updated = now
        return self


def derive_status(steps: list[PlanStep]) -> PlanStatus:
    if steps and all(s.status == "completed" for s in steps):
        return "completed"
    if any(s.status == "failed" for s in steps):
        return "cancelled"
    return "active"


def validate_plan(raw: Any) -> Plan | None:
    """Build a Plan from stored JSON, filling defaults.

    Returns None when id / title / steps are missing or no step has a title.
    Unknown plan types become 'other'.
    """
    if not isinstance(raw, dict):
        return None
    if not raw.get("id") or not raw.get("title") or not isinstance(raw.get("steps"), list):
        return None

    now = utc_timestamp()
    steps = [
        PlanStep(
            id=s.get("id") or generate_id("step"),
            title=s["title"],
            description=s.get("description") or "",
            status=s.get("status") if s.get("status") in STEP_STATUSES else "pending",
            dependencies=list(s["dependencies"]) if isinstance(s.get("dependencies"), list) else [],
            created=s.get("created") or now,
            updated=s.get("updated") or now,
            metadata=dict(s.get("metadata") or {}),
        )
        for s in raw["steps"]
        if isinstance(s, dict) and s.get("title")
    ]
    if not steps:
        return None

    return Plan(
        id=str(raw["id"]),
        title=str(raw["title"]),
        description=str(raw.get("description") or ""),
        steps=steps,
        status=raw.get("status") if raw.get("status") in PLAN_STATUSES else "active",
        created=raw.get("created") or now,
        updated=raw.get("updated") or now,
        namespace=str(raw.get("namespace") or ""),
        type=raw.get("type") if raw.get("type") in PLAN_TYPES else "other",
        metadata=dict(raw.get("metadata") or {}),
    )


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def render_plan_markdown(plan: Plan) -> str:
    """Render *plan* in the '## Plan:' format the extractor reads back."""
    lines = [f"## Plan: {plan.title}", ""]
    for i, step in enumerate(plan.steps, start=1):
        lines.append(f"{i}. {step.title}")
        for desc_line in step.description.splitlines():
            if desc_line.strip():
                lines.append(f"   - {desc_line.strip()}")
    return "\n".join(lines) + "\n"


_STEP_MARKS = {"completed": "✓", "in_progress": ">"}


def plan_context(plan: Plan) -> str:
    """Active-plan summary injected into the chat system prompt."""
    done = sum(1 for s in plan.steps if s.status == "completed")
    current = next((s for s in plan.steps if s.status == "in_progress"), None)
    upcoming = next((s for s in plan.steps if s.status == "pending"), None)
    md = plan.metadata

    lines = [
        f"Active Plan: {plan.title}",
        f"Type: {plan.type}",
        f"Progress: {done}/{len(plan.steps)} steps completed",
        f"Status: {plan.status}",
        "",
        "Description:",
        plan.description,
        "",
        "Current Progress:",
    ]
    lines.extend(f"{_STEP_MARKS.get(s.status, '○')} {s.title}" for s in plan.steps)
    lines.append("")
    if current:
        lines.append(f"Current Step: {current.title}")
    if upcoming:
        lines.append(f"Next Step: {upcoming.title}")

    context = []
    if md.get("targetVersion"):
        context.append(f"- Target Version: {md['targetVersion']}")
    if md.get("affectedFiles"):
        context.append(f"- Affected Files: {', '.join(md['affectedFiles'])}")
    if md.get("dependencies"):
        context.append(f"- Dependencies: {', '.join(md['dependencies'])}")
    if md.get("estimatedTime"):
        context.append(f"- Estimated Time: {md['estimatedTime']}")
    if context:
        lines.extend(["", "Context:", *context])
    return "\n".join(lines)
