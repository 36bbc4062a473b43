"""
Command line interface for atomc.

``atomc plan`` asks a local LLM for an atomic commit plan covering the
current diff and prints it. ``atomc apply`` does the same (or reads a plan
from ``--plan-file``), and with ``--execute`` creates the commits, stopping
at the first unit that cannot be applied safely.

Every expected failure is reported as an error response (JSON on stdout
with ``--format json``, a message on stderr with ``--format human``) and
mapped to a stable exit code; see :data:`EXIT_CODES`.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click

from atomc import __version__
from atomc.apply.engine import ApplyErrorKind, ApplyRequest, apply_plan, planned_results
from atomc.config.loader import ConfigError, ResolvedConfig, resolve_config
from atomc.diff.diff_engine import DiffMode, compute_diff
from atomc.diff.hash_guard import fingerprint
from atomc.llm.ollama_client import LLMError, LLMParseError, LLMTimeoutError, client_for_config
from atomc.llm.plan_generator import PlanGenerator, PromptContext
from atomc.plan.models import (
    ApplyStatus,
    CommitApplyResponse,
    CommitPlan,
    ErrorDetail,
    ErrorResponse,
    InputMeta,
    InputSource,
    PlanWarning,
)
from atomc.plan.schema import SchemaKind, validate_schema
from atomc.plan.semantic import ScopePolicy, validate_commit_units
from atomc.vcs.git_client import GitClient, GitCommandError, GitError, GitIOError


# Create a module-level logger. Attach a null handler and disable
# propagation to avoid logging errors when the root logger's stream is
# closed (such as during unit tests). When logging is configured by
# the CLI, root handlers will be added and messages will propagate.
logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Error codes and exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1


class ErrorCode(str, Enum):
    USAGE_ERROR = "usage_error"
    INPUT_INVALID = "input_invalid"
    LLM_RUNTIME_ERROR = "llm_runtime_error"
    LLM_TIMEOUT = "llm_timeout"
    LLM_PARSE_ERROR = "llm_parse_error"
    GIT_ERROR = "git_error"
    CONFIG_ERROR = "config_error"
    PLAN_INVALID = "plan_invalid"
    DIFF_HASH_MISMATCH = "diff_hash_mismatch"
    APPLY_FAILED = "apply_failed"


EXIT_CODES = {
    ErrorCode.USAGE_ERROR: 2,
    ErrorCode.INPUT_INVALID: 3,
    ErrorCode.LLM_RUNTIME_ERROR: 4,
    ErrorCode.LLM_TIMEOUT: 4,
    ErrorCode.LLM_PARSE_ERROR: 5,
    ErrorCode.GIT_ERROR: 6,
    ErrorCode.CONFIG_ERROR: 7,
    ErrorCode.PLAN_INVALID: 8,
    ErrorCode.DIFF_HASH_MISMATCH: 9,
    ErrorCode.APPLY_FAILED: 10,
}

_LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

FORMAT_JSON = "json"
FORMAT_HUMAN = "human"
DIFF_PREVIEW_CHARS = 4000

_STATUS_COLORS = {
    ApplyStatus.PLANNED: "cyan",
    ApplyStatus.APPLIED: "green",
    ApplyStatus.SKIPPED: "yellow",
    ApplyStatus.FAILED: "red",
}


class CommandFailure(Exception):
    """An expected failure that ends the command with an error response.

    ``response`` optionally carries partial apply results so that human
    output can show them before the error message.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        response: Optional[CommitApplyResponse] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details
        self.response = response


@dataclass
class GlobalOptions:
    config_path: Optional[Path]
    no_color: bool
    request_id: str


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def print_info(message: str, indent: int = 0) -> None:
    """Print an info message."""
    prefix = "  " * indent
    click.echo(f"{prefix}{message}", err=False)


def print_warning(message: str, color: Optional[bool] = None) -> None:
    """Print a warning message to stderr."""
    click.echo(click.style(f"warning: {message}", fg="yellow"), err=True, color=color)


def print_error(message: str, color: Optional[bool] = None) -> None:
    """Print an error message to stderr."""
    click.echo(click.style(message, fg="red"), err=True, color=color)


def _echo_json(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2))


def _color_flag(options: GlobalOptions) -> Optional[bool]:
    # None lets click decide based on whether stdout is a terminal
    return False if options.no_color else None


def _plural(count: int) -> str:
    return "commit" if count == 1 else "commits"


def render_plan_human(plan: CommitPlan, options: GlobalOptions) -> None:
    units = plan.plan
    print_info(f"Commit plan ({len(units)} {_plural(len(units))}):")
    for index, unit in enumerate(units, start=1):
        print_info(f"{index}. {unit.subject()}", indent=1)
        print_info(f"files: {', '.join(unit.files)}", indent=2)
    for warning in plan.warnings or []:
        print_warning(warning.message, color=_color_flag(options))


def render_apply_human(response: CommitApplyResponse, options: GlobalOptions) -> None:
    units = response.plan
    results = {result.id: result for result in response.results}
    color = _color_flag(options)
    print_info(f"Apply plan ({len(units)} {_plural(len(units))}):")
    for index, unit in enumerate(units, start=1):
        result = results.get(unit.id)
        status = click.style(result.status.value, fg=_STATUS_COLORS[result.status]) if result else "?"
        line = f"  {index}. [{status}] {unit.subject()}"
        if result is not None and result.commit_hash:
            line += f" ({result.commit_hash[:12]})"
        click.echo(line, color=color)
        print_info(f"files: {', '.join(unit.files)}", indent=2)
    for warning in response.warnings or []:
        print_warning(warning.message, color=color)


def emit_failure(failure: CommandFailure, output_format: str, options: GlobalOptions) -> None:
    """Report ``failure`` and exit with its mapped exit code."""
    logger.debug("Command failed with %s: %s", failure.code.value, failure.message)
    if output_format == FORMAT_JSON:
        response = ErrorResponse(
            error=ErrorDetail(code=failure.code.value, message=failure.message, details=failure.details),
            request_id=options.request_id,
        )
        _echo_json(response.to_dict())
    else:
        if failure.response is not None:
            render_apply_human(failure.response, options)
        print_error(failure.message, color=_color_flag(options))
    raise click.exceptions.Exit(EXIT_CODES[failure.code])


def configure_logging(level: int) -> None:
    """Send log records of every atomc module to stderr at ``level``."""
    # Use force=True so handlers are reconfigured on every invocation
    # (important for tests).
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", force=True)
    # module loggers start detached from the root logger
    for name in list(logging.root.manager.loggerDict):
        if name == "atomc" or name.startswith("atomc."):
            logging.getLogger(name).propagate = True


def _run_guarded(ctx: click.Context, output_format: str, body: Callable[[], None]) -> None:
    options: GlobalOptions = ctx.obj
    try:
        body()
    except CommandFailure as failure:
        emit_failure(failure, output_format, options)
    except click.exceptions.Exit:
        raise
    except Exception as exc:
        logging.exception("Unhandled error: %s", exc)
        print_error(f"Unexpected error: {exc}", color=_color_flag(options))
        ctx.exit(EXIT_GENERIC_ERROR)


# ---------------------------------------------------------------------------
# Input handling
# ---------------------------------------------------------------------------
def _git_error_details(error: GitError) -> Dict[str, Any]:
    details: Dict[str, Any] = {"cmd": error.cmd}
    if isinstance(error, GitCommandError):
        details["stderr"] = error.stderr
    elif isinstance(error, GitIOError):
        details["error"] = error.reason
    else:
        details["error"] = "git output was not utf-8"
    return details


def load_config(options: GlobalOptions, overrides: Dict[str, Any]) -> ResolvedConfig:
    try:
        return resolve_config(cli_path=options.config_path, overrides=overrides)
    except ConfigError as exc:
        raise CommandFailure(ErrorCode.CONFIG_ERROR, str(exc), {"type": type(exc).__name__}) from exc


def validate_repo_path(path: Path) -> Path:
    """Check ``path`` is an existing directory and return its repository root."""
    if not path.exists():
        raise CommandFailure(ErrorCode.INPUT_INVALID, "repo path does not exist", {"path": str(path)})
    if not path.is_dir():
        raise CommandFailure(ErrorCode.INPUT_INVALID, "repo path is not a directory", {"path": str(path)})
    return GitClient.find_repo_root(path) or path


def _read_stdin() -> Optional[str]:
    """Return piped stdin, or ``None`` when stdin is an interactive terminal."""
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return None
    try:
        return stream.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise CommandFailure(
            ErrorCode.INPUT_INVALID, "failed to read diff from stdin", {"error": str(exc)}
        ) from exc


def read_diff_input(diff_file: Optional[str]) -> Optional[str]:
    """Return a caller-supplied diff, or ``None`` if it must be computed.

    ``-`` reads stdin explicitly. Piped stdin is used when no file is given;
    an empty pipe counts as no input.
    """
    if diff_file == "-":
        return _read_stdin() or ""
    piped = _read_stdin()
    if diff_file is not None:
        if piped:
            raise CommandFailure(ErrorCode.USAGE_ERROR, "stdin and --diff-file cannot both be used")
        path = Path(diff_file)
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CommandFailure(
                ErrorCode.INPUT_INVALID,
                "failed to read diff file",
                {"path": str(path), "error": str(exc)},
            ) from exc
    return piped or None


def compute_repo_diff(repo: Path, config: ResolvedConfig) -> str:
    try:
        return compute_diff(repo, config.diff_mode, config.include_untracked)
    except GitError as exc:
        raise CommandFailure(
            ErrorCode.GIT_ERROR, "failed to compute git diff", _git_error_details(exc)
        ) from exc


def validate_diff_requirements(diff: str, config: ResolvedConfig) -> None:
    if not diff:
        raise CommandFailure(ErrorCode.INPUT_INVALID, "diff input is empty")
    if len(diff.encode("utf-8")) > config.max_diff_bytes:
        raise CommandFailure(
            ErrorCode.INPUT_INVALID,
            "diff exceeds max_diff_bytes",
            {"max_diff_bytes": config.max_diff_bytes},
        )


@dataclass
class DiffInput:
    text: str
    source: InputSource
    repo: Optional[Path]

    def meta(self, config: ResolvedConfig) -> InputMeta:
        if self.source is InputSource.REPO:
            return InputMeta(
                source=self.source,
                diff_mode=config.diff_mode,
                include_untracked=config.include_untracked,
                diff_hash=fingerprint(self.text),
            )
        return InputMeta(source=self.source, diff_hash=fingerprint(self.text))


def gather_diff(repo: Optional[Path], diff_file: Optional[str], config: ResolvedConfig) -> DiffInput:
    repo_root = validate_repo_path(repo) if repo is not None else None
    supplied = read_diff_input(diff_file)
    if supplied is not None:
        diff = DiffInput(text=supplied, source=InputSource.DIFF, repo=repo_root)
    elif repo_root is not None:
        diff = DiffInput(text=compute_repo_diff(repo_root, config), source=InputSource.REPO, repo=repo_root)
    else:
        raise CommandFailure(ErrorCode.INPUT_INVALID, "no diff provided and no repo path supplied")
    validate_diff_requirements(diff.text, config)
    if config.log_diff:
        logger.debug("diff logging enabled")
        logger.debug("diff preview (%s):\n%s", diff.source.value, diff.text[:DIFF_PREVIEW_CHARS])
    return diff


# ---------------------------------------------------------------------------
# Plan acquisition
# ---------------------------------------------------------------------------
def generate_plan(diff: DiffInput, config: ResolvedConfig) -> CommitPlan:
    generator = PlanGenerator(client_for_config(config))
    context = PromptContext(
        diff=diff.text,
        repo_path=diff.repo,
        diff_mode=config.diff_mode if diff.source is InputSource.REPO else None,
        include_untracked=config.include_untracked if diff.source is InputSource.REPO else None,
    )
    try:
        return generator.generate(context)
    except LLMTimeoutError as exc:
        raise CommandFailure(
            ErrorCode.LLM_TIMEOUT, str(exc), {"timeout_secs": config.llm_timeout_secs}
        ) from exc
    except LLMParseError as exc:
        details = {"violations": exc.violations} if exc.violations else None
        raise CommandFailure(ErrorCode.LLM_PARSE_ERROR, str(exc), details) from exc
    except LLMError as exc:
        raise CommandFailure(
            ErrorCode.LLM_RUNTIME_ERROR, str(exc), {"runtime": config.runtime, "model": config.model}
        ) from exc


def load_plan_file(path: Path) -> CommitPlan:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CommandFailure(
            ErrorCode.INPUT_INVALID, "failed to read plan file", {"path": str(path), "error": str(exc)}
        ) from exc
    result = validate_schema(SchemaKind.COMMIT_PLAN, data)
    if not result.ok:
        raise CommandFailure(
            ErrorCode.PLAN_INVALID,
            "plan file does not match the commit plan schema",
            {"path": str(path), "violations": [v.to_dict() for v in result.violations]},
        )
    return CommitPlan.from_dict(data)


def check_plan_semantics(plan: CommitPlan, scope_policy: ScopePolicy) -> None:
    """Reject plans that break commit policy and record policy warnings on ``plan``."""
    report = validate_commit_units(plan.plan, scope_policy)
    if not report.accepted:
        raise CommandFailure(
            ErrorCode.PLAN_INVALID,
            "plan failed semantic validation",
            {
                "errors": [v.to_dict() for v in report.errors],
                "messages": [v.message for v in report.errors],
            },
        )
    if report.warnings:
        warnings = list(plan.warnings or [])
        warnings.extend(
            PlanWarning(code=v.kind.value, message=v.message, details={"id": v.unit_id})
            for v in report.warnings
        )
        plan.warnings = warnings


def _recorded_hash(plan: CommitPlan, current: InputMeta) -> Optional[str]:
    recorded = plan.input
    if recorded is None or recorded.diff_hash is None or current.source is not InputSource.REPO:
        return None
    if (
        recorded.source is not InputSource.REPO
        or recorded.diff_mode is not current.diff_mode
        or recorded.include_untracked != current.include_untracked
    ):
        logger.warning("Plan file was recorded for different diff settings; using the current diff hash")
        return None
    return recorded.diff_hash


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _input_options(func: Callable) -> Callable:
    """Options shared by ``plan`` and ``apply``."""
    decorators = [
        click.option("--diff-file", "diff_file", default=None, help="Read the diff from a file ('-' for stdin)."),
        click.option(
            "--diff-mode",
            type=click.Choice([mode.value for mode in DiffMode]),
            default=None,
            help="Which changes to diff when computing from the repository.",
        ),
        click.option(
            "--include-untracked/--no-include-untracked",
            "include_untracked",
            default=None,
            help="Include untracked files in a computed diff.",
        ),
        click.option(
            "--format",
            "output_format",
            type=click.Choice([FORMAT_JSON, FORMAT_HUMAN]),
            default=FORMAT_JSON,
            show_default=True,
        ),
        click.option("--log-diff/--no-log-diff", "log_diff", default=None, help="Log a preview of the diff."),
        click.option("--model", default=None, help="LLM model name."),
        click.option("--timeout", type=click.IntRange(min=1), default=None, help="LLM timeout in seconds."),
        click.option(
            "--scope-policy",
            type=click.Choice([policy.value for policy in ScopePolicy]),
            default=None,
            help="How to treat commits without a scope.",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _overrides(**values: Any) -> Dict[str, Any]:
    return {
        "model": values.get("model"),
        "diff_mode": values.get("diff_mode"),
        "include_untracked": values.get("include_untracked"),
        "llm_timeout_secs": values.get("timeout"),
        "log_diff": values.get("log_diff"),
        "scope_policy": values.get("scope_policy"),
    }


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to a JSON configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(list(_LOG_LEVELS)),
    default="info",
    show_default=True,
)
@click.option("--quiet", is_flag=True, help="Only log errors.")
@click.option("--no-color", is_flag=True, help="Disable colored output.")
@click.version_option(version=__version__, prog_name="atomc")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], log_level: str, quiet: bool, no_color: bool) -> None:
    """Local-first atomic commit planner and executor."""
    configure_logging(logging.ERROR if quiet else _LOG_LEVELS[log_level])
    ctx.obj = GlobalOptions(config_path=config_path, no_color=no_color, request_id=uuid.uuid4().hex)


@main.command("plan")
@click.option("--repo", type=click.Path(path_type=Path), default=None, help="Repository to diff.")
@_input_options
@click.pass_context
def plan_command(
    ctx: click.Context,
    repo: Optional[Path],
    diff_file: Optional[str],
    output_format: str,
    **values: Any,
) -> None:
    """Propose an atomic commit plan for the current diff."""
    options: GlobalOptions = ctx.obj

    def body() -> None:
        config = load_config(options, _overrides(**values))
        diff = gather_diff(repo, diff_file, config)
        plan = generate_plan(diff, config)
        check_plan_semantics(plan, config.scope_policy)
        plan.request_id = options.request_id
        plan.input = diff.meta(config)
        if output_format == FORMAT_JSON:
            _echo_json(plan.to_dict())
        else:
            render_plan_human(plan, options)

    _run_guarded(ctx, output_format, body)


@main.command("apply")
@click.option("--repo", type=click.Path(path_type=Path), required=True, help="Repository to commit to.")
@click.option(
    "--plan-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Apply this plan instead of generating one.",
)
@click.option("--execute", is_flag=True, help="Create the commits. Without it nothing is changed.")
@click.option("--cleanup-on-error", is_flag=True, help="Unstage a failed commit's files.")
@click.option("--assisted-by", default=None, help="Append an 'Assisted by:' trailer to each commit.")
@_input_options
@click.pass_context
def apply_command(
    ctx: click.Context,
    repo: Path,
    plan_file: Optional[Path],
    execute: bool,
    cleanup_on_error: bool,
    assisted_by: Optional[str],
    diff_file: Optional[str],
    output_format: str,
    **values: Any,
) -> None:
    """Apply a commit plan, one commit per unit."""
    options: GlobalOptions = ctx.obj

    def body() -> None:
        config = load_config(options, _overrides(**values))
        diff = gather_diff(repo, diff_file, config)
        plan = load_plan_file(plan_file) if plan_file is not None else generate_plan(diff, config)
        check_plan_semantics(plan, config.scope_policy)

        meta = diff.meta(config)
        expected_hash = _recorded_hash(plan, meta) or meta.diff_hash
        plan.request_id = options.request_id
        plan.input = meta

        if not execute:
            response = CommitApplyResponse.from_plan(plan, planned_results(plan.plan))
            _emit_apply(response, output_format, options)
            return

        if diff.source is InputSource.DIFF:
            plan.warnings = list(plan.warnings or []) + [
                PlanWarning(
                    code="diff_unverified",
                    message="diff was supplied directly; repository drift was not verified",
                )
            ]
        request = ApplyRequest(
            repo=diff.repo,
            plan=plan.plan,
            diff=diff.text,
            source=diff.source,
            diff_mode=config.diff_mode,
            include_untracked=config.include_untracked,
            expected_diff_hash=expected_hash,
            cleanup_on_error=cleanup_on_error,
            assisted_by=assisted_by,
        )
        outcome = apply_plan(request)
        response = CommitApplyResponse.from_plan(plan, outcome.results)
        if outcome.error is not None:
            code = (
                ErrorCode.DIFF_HASH_MISMATCH
                if outcome.error.kind is ApplyErrorKind.DIFF_HASH_MISMATCH
                else ErrorCode.APPLY_FAILED
            )
            raise CommandFailure(
                code,
                outcome.error.message,
                {
                    "error": outcome.error.to_error_detail().to_dict(),
                    "results": [result.to_dict() for result in outcome.results],
                },
                response=response,
            )
        _emit_apply(response, output_format, options)

    _run_guarded(ctx, output_format, body)


def _emit_apply(response: CommitApplyResponse, output_format: str, options: GlobalOptions) -> None:
    if output_format == FORMAT_JSON:
        _echo_json(response.to_dict())
    else:
        render_apply_human(response, options)
