"""Plan extraction from assistant prose.

Rule-based, no I/O. Title/body detection runs an ordered list of matchers;
the first one that matches wins:

  heading      ## Plan: <title>
  label        Plan: <title>
  here-is      Here's / Here is (the|a) plan: <title>
  lets-create  Let's / Let us (create|make|implement|develop) (a|the) plan: <title>
  numbered     a line starting "1. " → title "Plan: <that line>", body = whole text

A body runs to the next "\\n##" or the end of the text. Steps are numbered
lines ("3. Do the thing") followed by optional "-" / "•" bullet lines, which
become the step description. No title or no steps → None.

Usage:
    plan = extract_plan(reply_text, namespace="my-project")
    if plan is not None:
        store.store(plan)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from codecontext.db.models import utc_timestamp
from codecontext.plans.models import Plan, PlanStep, PlanType, generate_id

_BODY = r"\n([\s\S]*?)(?=\n##|\s*\Z)"


# ------------------------------------------------------------------
# Title / body matchers
# ------------------------------------------------------------------


class PlanMatcher:
    """One title/body detection strategy."""

    name: str

    def match(self, text: str) -> tuple[str, str] | None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class HeadingMatcher(PlanMatcher):
    """Title on the marker line, body until the next '##' heading."""

    name: str
    pattern: re.Pattern[str]

    def match(self, text: str) -> tuple[str, str] | None:
        m = self.pattern.search(text)
        if not m:
            return None
        title = m.group(1).strip()
        body = (m.group(2) or "").strip() or text.strip()
        return title, body


class NumberedListMatcher(PlanMatcher):
    """Implicit plan: any text containing a '1. ...' line."""

    name = "numbered"
    _FIRST_ITEM = re.compile(r"^[ \t]*1\.[ \t]+([^\n]+)", re.MULTILINE)

    def match(self, text: str) -> tuple[str, str] | None:
        m = self._FIRST_ITEM.search(text)
        if not m:
            return None
        return f"Plan: {m.group(1).strip()}", text.strip()


MATCHERS: tuple[PlanMatcher, ...] = (
    HeadingMatcher("heading", re.compile(r"##[ \t]*Plan:[ \t]*([^\n]+)" + _BODY, re.IGNORECASE)),
    HeadingMatcher("label", re.compile(r"\bPlan:[ \t]*([^\n]+)" + _BODY, re.IGNORECASE)),
    HeadingMatcher(
        "here-is",
        re.compile(r"Here(?:'s| is) (?:the |a )?plan:?[ \t]*([^\n]+)" + _BODY, re.IGNORECASE),
    ),
    HeadingMatcher(
        "lets-create",
        re.compile(
            r"Let(?:'s| us) (?:create|make|implement|develop) (?:a |the )?plan:?[ \t]*([^\n]+)"
            + _BODY,
            re.IGNORECASE,
        ),
    ),
    NumberedListMatcher(),
)


def find_plan_text(text: str) -> tuple[str, str] | None:
    """Return (title, body) from the first matcher that fires, else None."""
    for matcher in MATCHERS:
        found = matcher.match(text)
        if found is not None:
            return found
    return None


# ------------------------------------------------------------------
# Field heuristics
# ------------------------------------------------------------------

_FILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"`([^`]+\.[a-z]+)`"),
    re.compile(r"(?:^|(?<=\s))([\w-]+\.[A-Za-z][\w-]*)(?=\s|$)", re.MULTILINE),
    re.compile(r"\b(?:modify|update|create|file|in)\s+([^\s,`]+\.[a-z]+)", re.IGNORECASE),
    re.compile(r"([^`\s,]+/[^`\s,]+\.[a-z]+)"),
)

_COMMAND_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"`([^`]+)`"),
    re.compile(r"\b(?:run|execute|using)\s+([^\s`]+?)(?=[.,;:]?(?:\s|$))"),
    re.compile(r"\$\s*([^`\n]+)"),
)

_STEP_TIME_RE = re.compile(r"Estimated time:\s*([^\n]+)", re.IGNORECASE)
_PLAN_TIME_RE = re.compile(
    r"Estimated time:\s*(\d+(?:\s*(?:min(?:ute)?|hour|day)s?))", re.IGNORECASE
)
_TEST_RE = re.compile(r"\b(?:test|verify|check)\s+(?:that\s+)?([^.,\n]+)", re.IGNORECASE)
_ROLLBACK_RE = re.compile(r"\b(?:rollback|revert):\s*([^.\n]+)", re.IGNORECASE)
_TAGS_RE = re.compile(r"\b(?:tags?|labels?|categories?):[ \t]*([\w \t,#]+)", re.IGNORECASE)
_DEPENDS_RE = re.compile(r"\b(?:requires?|depends? on|needs?)[ \t]+([\w \t,@./-]+)", re.IGNORECASE)
_TARGET_VERSION_RE = re.compile(
    r"\b(?:target[ \t]+version|version)[ \t]*:?[ \t]*(v?\d+(?:\.\d+)*)", re.IGNORECASE
)
_VERSION_RANGE_RE = re.compile(
    r"\bfrom[ \t]+v?(\d+(?:\.\d+)*)[ \t]+to[ \t]+v?(\d+(?:\.\d+)*)", re.IGNORECASE
)

_STEP_RE = re.compile(r"^[ \t]*(\d+)\.[ \t]*([^\n]+)((?:(?:\n[ \t]*)+[-•][^\n]*)*)", re.MULTILINE)
_BULLET_RE = re.compile(r"^[ \t]*[-•][ \t]*", re.MULTILINE)


def _unique(items) -> list[str]:
    return list(dict.fromkeys(items))


def extract_affected_files(text: str) -> list[str]:
    """Path-like tokens from four heuristics, unioned in first-seen order."""
    if not text:
        return []
    found = (
        m.group(1)
        for pattern in _FILE_PATTERNS
        for m in pattern.finditer(text)
        if m.group(1) and "*" not in m.group(1)
    )
    return _unique(found)


def extract_commands(text: str) -> list[str]:
    if not text:
        return []
    found = (
        m.group(1).strip()
        for pattern in _COMMAND_PATTERNS
        for m in pattern.finditer(text)
        if m.group(1) and "*" not in m.group(1)
    )
    return _unique(c for c in found if c)


def extract_tests(text: str) -> list[str]:
    return _unique(m.group(1).strip() for m in _TEST_RE.finditer(text) if m.group(1).strip())


def extract_rollback(text: str) -> str | None:
    m = _ROLLBACK_RE.search(text)
    return m.group(1).strip() if m else None


def extract_estimated_time(text: str) -> str | None:
    m = _STEP_TIME_RE.search(text)
    return m.group(1).strip() if m else None


def _split_list(raw: str, pattern: str) -> list[str]:
    return [part.strip().lstrip("#") for part in re.split(pattern, raw) if part.strip().lstrip("#")]


def extract_plan_metadata(body: str) -> dict[str, Any]:
    """Whole-plan fields found in *body*; keys are only set when found (except affectedFiles)."""
    metadata: dict[str, Any] = {}

    if m := _PLAN_TIME_RE.search(body):
        metadata["estimatedTime"] = m.group(1)

    metadata["affectedFiles"] = extract_affected_files(body)

    tags = _unique(t for m in _TAGS_RE.finditer(body) for t in _split_list(m.group(1), r"[,\s]+"))
    if tags:
        metadata["tags"] = tags

    deps = _unique(d for m in _DEPENDS_RE.finditer(body) for d in _split_list(m.group(1), r",\s*"))
    if deps:
        metadata["dependencies"] = deps

    if m := _TARGET_VERSION_RE.search(body):
        metadata["targetVersion"] = m.group(1)

    if m := _VERSION_RANGE_RE.search(body):
        metadata["versionInfo"] = {"from": m.group(1), "to": m.group(2)}

    return metadata


# ------------------------------------------------------------------
# Keyword classification
# ------------------------------------------------------------------


def detect_plan_type(title: str, body: str) -> PlanType:
    text = f"{title} {body}".lower()
    if any(k in text for k in ("refactor", "upgrade", "migration")):
        return "refactor"
    if any(k in text for k in ("feature", "implement", "add", "enhance")):
        return "feature"
    if any(k in text for k in ("bug", "fix", "issue")):
        return "bug"
    return "other"


def detect_complexity(body: str) -> str:
    text = body.lower()
    if any(k in text for k in ("complex", "extensive", "major")):
        return "high"
    if any(k in text for k in ("moderate", "medium", "several")):
        return "medium"
    return "low"


def detect_priority(body: str) -> str:
    text = body.lower()
    if any(k in text for k in ("urgent", "critical", "high priority")):
        return "high"
    if any(k in text for k in ("moderate", "medium priority")):
        return "medium"
    return "low"


# ------------------------------------------------------------------
# Steps + plan
# ------------------------------------------------------------------


def extract_steps(body: str, timestamp: str | None = None) -> list[PlanStep]:
    """Numbered steps of *body*, each depending on the one before it."""
    timestamp = timestamp or utc_timestamp()
    steps: list[PlanStep] = []

    for m in _STEP_RE.finditer(body):
        span = m.group(0)
        bullets = [b for b in _BULLET_RE.sub("", m.group(3)).split("\n") if b.strip()]
        step_metadata = {
            "estimatedTime": extract_estimated_time(span),
            "affectedFiles": extract_affected_files(span),
            "commands": extract_commands(span),
            "tests": extract_tests(span),
            "rollback": extract_rollback(span),
        }
        steps.append(
            PlanStep(
                id=generate_id("step"),
                title=m.group(2).strip(),
                description="\n".join(b.strip() for b in bullets),
                created=timestamp,
                updated=timestamp,
                metadata={k: v for k, v in step_metadata.items() if v is not None},
            )
        )

    for previous, step in zip(steps, steps[1:]):
        step.dependencies.append(previous.id)
    return steps


def extract_plan(text: str, namespace: str = "") -> Plan | None:
    """Build a Plan from assistant *text*, or None when it holds no plan."""
    found = find_plan_text(text)
    if found is None:
        return None

    title, body = found
    timestamp = utc_timestamp()
    steps = extract_steps(body, timestamp=timestamp)
    if not steps:
        return None

    return Plan(
        id=generate_id("plan"),
        title=title,
        description=body,
        steps=steps,
        status="active",
        created=timestamp,
        updated=timestamp,
        namespace=namespace,
        type=detect_plan_type(title, body),
        metadata={
            "sourceMessage": text,
            "complexity": detect_complexity(body),
            "priority": detect_priority(body),
            **extract_plan_metadata(body),
        },
    )
