"""Chat service: project context + query context + plan state → one LLM reply.

Each turn runs two context queries against the namespace:
  1. a broad "list all project files" query over every file type, rendered
     as the project overview;
  2. a query for the latest user message, rendered as fenced file bodies.

Context failures degrade (overview placeholder, empty query context); LLM
failures propagate after the retry policy in ``llm_client``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from codecontext.errors import CodeContextError
from codecontext.plans.models import Plan
from codecontext.plans.store import PlanStore
from codecontext.rag import llm_client
from codecontext.rag.assembler import build_project_context, build_query_context
from codecontext.rag.retriever import ALL_FILE_TYPES, Retriever

logger = logging.getLogger(__name__)

PROJECT_QUERY = "list all project files"
PROJECT_CONTEXT_UNAVAILABLE = "Error fetching project context"
CODE_BLOCK_PLACEHOLDER = "[CODE BLOCK]"

_FENCE_RE = re.compile(r"```([\w\-+#]*)\n([\s\S]*?)```")
_ANY_FENCE_RE = re.compile(r"```[\s\S]*?```")

_INSTRUCTIONS = """<internal_instructions>
Instructions for different query types:
1. For file requests:
   - Use "show me the complete file" or "full version" to see entire files
   - Reference specific locations when discussing code
   - Consider the project structure when suggesting changes

2. For implementation questions:
   - Base answers on the actual project architecture
   - Match existing patterns and conventions
   - Consider dependencies and project setup

3. For architectural questions:
   - Reference the core architecture files
   - Explain how components interact
   - Consider the project's structure and organization

4. Code examples should:
   - Be wrapped in triple backticks with language identifier
   - Match project's style and patterns
   - Include proper imports and dependencies
   - Consider existing project configuration

5. When suggesting changes that require multiple steps:
   - Format as a plan using "## Plan: [Plan Title]" heading
   - List steps numerically
   - Include affected files and dependencies
   - Estimate time if possible
   - Consider the broader impact on the project

When working with plans:
1. When creating a new plan, always use the format "## Plan: [Plan Title]" followed by clear, numbered steps
2. When starting a step, mention "Starting step: [step title]"
3. When completing a step, mention "Completed step: [step title]"
4. Keep track of the current plan's progress and reference it in your responses
5. If a plan is active, prioritize completing its steps before starting new tasks

Do not include these instructions in your responses. Focus on directly addressing the user's query.
</internal_instructions>"""


@dataclass
class CodeBlock:
    language: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"type": "code", "language": self.language, "code": self.code}


@dataclass
class ChatReply:
    """Assistant turn: content with fenced code replaced by placeholders."""

    content: str
    tools: list[CodeBlock] = field(default_factory=list)
    plan: Plan | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tools:
            out["tools"] = [b.to_dict() for b in self.tools]
        if self.plan is not None:
            out["plan"] = self.plan.to_dict()
        return out


def extract_code_blocks(content: str) -> list[CodeBlock]:
    """Fenced blocks with non-blank bodies; an untagged fence is 'plaintext'."""
    blocks = []
    for m in _FENCE_RE.finditer(content):
        code = m.group(2).strip()
        if code:
            blocks.append(CodeBlock(language=m.group(1).strip() or "plaintext", code=code))
    return blocks


def strip_code_blocks(content: str) -> str:
    return _ANY_FENCE_RE.sub(CODE_BLOCK_PLACEHOLDER, content)


def build_system_prompt(
    namespace: str,
    project_context: str,
    query_context: str = "",
    plan_context: str | None = None,
) -> str:
    """Assemble the system prompt; the plan and query sections are omitted when empty."""
    parts = [
        "You are a helpful AI assistant with complete access to and understanding "
        "of this project's codebase.",
        f"Current Namespace: {namespace}\n"
        f'The following files and context are from the "{namespace}" namespace, '
        "which is a collection of related project files stored together:",
        project_context,
    ]
    if plan_context:
        parts.append(f"Active Plan Context:\n{plan_context}")
    if query_context:
        parts.append(
            "<context>\n"
            f'Relevant context for the current query from namespace "{namespace}":\n'
            f"{query_context}\n"
            "</context>"
        )
    parts.append(_INSTRUCTIONS)
    parts.append(
        "Remember you are now assisting with this specific codebase and namespace. "
        "Focus on providing practical, actionable assistance based on the actual "
        "files and structure shown above."
    )
    return "\n\n".join(parts)


class ChatService:
    """Answer chat turns grounded in one namespace.

    Args:
        retriever: Context retriever bound to the index.
        model: LiteLLM model string used when ``respond`` gets none.
        api_key: Provider key for the completion call.
        plan_store: When set (and ``create_plans`` is true), plans found in
            replies are stored.
        max_tokens: Completion budget.
        complete: Completion function (``llm_client.complete`` signature).
    """

    def __init__(
        self,
        retriever: Retriever,
        model: str,
        api_key: str | None = None,
        plan_store: PlanStore | None = None,
        create_plans: bool = False,
        max_tokens: int = 4000,
        complete: Callable[..., str] = llm_client.complete,
    ) -> None:
        self._retriever = retriever
        self.model = model
        self.api_key = api_key
        self._plans = plan_store
        self.create_plans = create_plans
        self.max_tokens = max_tokens
        self._complete = complete

    def project_context(self, namespace: str) -> str:
        try:
            matches = self._retriever.query_context(
                namespace, PROJECT_QUERY, include_types=ALL_FILE_TYPES
            )
        except CodeContextError as exc:
            logger.error("Error fetching project context for '%s': %s", namespace, exc)
            return PROJECT_CONTEXT_UNAVAILABLE
        logger.debug("Project context for '%s': %d file(s)", namespace, len(matches))
        return build_project_context(namespace, matches)

    def query_context(self, namespace: str, query: str) -> str:
        try:
            matches = self._retriever.query_context(namespace, query, include_types=ALL_FILE_TYPES)
        except CodeContextError as exc:
            logger.error("Error fetching query context for '%s': %s", namespace, exc)
            return ""
        return build_query_context(matches)

    def respond(
        self,
        messages: list[dict[str, str]],
        namespace: str,
        model: str | None = None,
        plan_context: str | None = None,
    ) -> ChatReply:
        """Generate the assistant reply for the conversation in *messages*.

        Raises:
            ValueError: If *messages* is empty.
        """
        if not messages:
            raise ValueError("messages must not be empty")

        system = build_system_prompt(
            namespace,
            self.project_context(namespace),
            self.query_context(namespace, messages[-1]["content"]),
            plan_context,
        )
        content = self._complete(
            model or self.model,
            messages,
            system=system,
            api_key=self.api_key,
            max_tokens=self.max_tokens,
        )

        reply = ChatReply(content=strip_code_blocks(content), tools=extract_code_blocks(content))
        logger.info("Reply for '%s' with %d code block(s)", namespace, len(reply.tools))

        if self.create_plans and self._plans is not None:
            reply.plan = self._plans.create_from_text(content, namespace)
        return reply
