"""
Commit plan generation using an LLM.

The :class:`PlanGenerator` sends a diff and a little repository context to
a local model (via :class:`OllamaClient` or :class:`LlamaCppClient`) and
turns the reply into a :class:`~atomc.plan.models.CommitPlan`.

The model is asked for a bare JSON object. Replies wrapped in Markdown
code fences or surrounded by chatter are tolerated; anything that does not
pass the commit-plan schema raises :class:`LLMParseError` carrying the
schema violations.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from textwrap import dedent
from typing import Any, Optional

from atomc.diff.diff_engine import DiffMode
from atomc.llm.ollama_client import LLMClient, LLMParseError
from atomc.plan.models import CommitPlan
from atomc.plan.schema import SchemaKind, validate_schema


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


SYSTEM_PROMPT = dedent(
    """\
    You are a local commit planning assistant.
    Return a single JSON object that matches the CommitPlan schema.
    Do not include Markdown, comments, or any extra text.
    Follow atomic commit rules:
    - Each commit must do exactly one thing.
    - Split unrelated concerns into separate commits.
    - Foundations first, integrations last.
    - Avoid bundling refactors with feature changes.
    Commit message rules:
    - Use conventional commits: type[scope]: summary
    - Scope is required unless the change is truly global.
    - Summary is imperative, 50-72 chars.
    - Body is 1-3 short lines (no leading hyphens).
    If any required field is unknown, infer the best value."""
)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass
class Prompt:
    system: str
    user: str


@dataclass
class PromptContext:
    """Inputs rendered into the user prompt."""

    diff: str
    repo_path: Optional[Path] = None
    diff_mode: Optional[DiffMode] = None
    include_untracked: Optional[bool] = None
    git_status: Optional[str] = None


def _extract_json_text(text: str) -> str:
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise LLMParseError("LLM response does not contain a JSON object")
    return text[start:end + 1]


def parse_commit_plan(text: str) -> CommitPlan:
    """Parse and validate a commit plan returned by the model.

    Raises
    ------
    LLMParseError
        If no JSON object can be found, the object violates the
        commit-plan schema, or the plan is empty.
    """
    try:
        data: Any = json.loads(_extract_json_text(text))
    except json.JSONDecodeError as exc:
        logger.error("LLM returned invalid JSON: %s", exc)
        raise LLMParseError(f"LLM returned invalid JSON: {exc}") from exc

    result = validate_schema(SchemaKind.COMMIT_PLAN, data)
    if not result.ok:
        logger.error("LLM plan failed schema validation with %d violation(s)", len(result.violations))
        raise LLMParseError(
            "LLM plan does not match the commit plan schema",
            violations=[v.to_dict() for v in result.violations],
        )

    plan = CommitPlan.from_dict(data)
    if not plan.plan:
        raise LLMParseError("LLM returned an empty plan")
    return plan


class PlanGenerator:
    """Generate commit plans for a diff with a local LLM."""

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    def build_prompt(self, context: PromptContext) -> Prompt:
        repo_path = str(context.repo_path) if context.repo_path is not None else ""
        diff_mode = context.diff_mode.value if context.diff_mode is not None else ""
        if context.include_untracked is None:
            include_untracked = ""
        else:
            include_untracked = "true" if context.include_untracked else "false"
        user = (
            "You will be given a git diff and optional repo metadata.\n"
            "Produce an atomic commit plan as JSON only.\n\n"
            "Context:\n"
            f"- repo_path: {repo_path}\n"
            f"- diff_mode: {diff_mode}\n"
            f"- include_untracked: {include_untracked}\n"
            f"- git_status: {context.git_status or ''}\n\n"
            "Diff:\n"
            f"{context.diff}"
        )
        return Prompt(system=SYSTEM_PROMPT, user=user)

    def generate(self, context: PromptContext) -> CommitPlan:
        """Ask the model for a plan.

        ``LLMError`` and its subclasses from the client propagate unchanged.
        """
        prompt = self.build_prompt(context)
        logger.debug("Requesting commit plan for %d byte diff", len(context.diff.encode("utf-8")))
        text = self.client.generate(prompt.user, system=prompt.system)
        plan = parse_commit_plan(text)
        logger.info("LLM proposed %d commit(s)", len(plan.plan))
        return plan
