"""Implementation plans: extraction from assistant replies and persistence."""

from codecontext.plans.models import Plan, PlanStep, derive_status, plan_context, render_plan_markdown, validate_plan
from codecontext.plans.parser import extract_plan
from codecontext.plans.store import PlanStore, PollPolicy

__all__ = [
    "Plan",
    "PlanStep",
    "PlanStore",
    "PollPolicy",
    "derive_status",
    "extract_plan",
    "plan_context",
    "render_plan_markdown",
    "validate_plan",
]
