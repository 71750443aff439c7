"""Ordered step runner with rollback on fatal failure.

A run executes ``Step`` objects strictly in order against one ``RunContext``.
Each successful step may leave a rollback handler behind; when a required step
fails (or the operator interrupts) every handler registered so far is invoked
once, newest first. Each step outcome and the terminal state become one
``LogRecord`` on the context and one line in the run's log file.
"""

from __future__ import annotations

import enum
import getpass
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from config import LOG_DIR
from provision import prompts
from provision.errors import ConfirmationDeclined, ProvisionError, RunAborted, RunFailed
from provision.utils import OK, log, stamp, status_fail, status_pass, status_warn


class RunState(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    ROLLING_BACK = "RollingBack"
    ROLLED_BACK = "RolledBack"


LEVELS = {
    "info": logging.INFO,
    "ok": OK,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class LogRecord:
    timestamp: datetime
    level: str
    message: str
    step: str | None = None
    phase: str = "step"

    def line(self) -> str:
        return f"[{self.timestamp:%Y-%m-%d %H:%M:%S}] [{self.level.upper()}] {self.message}"


@dataclass
class Step:
    name: str
    action: Callable[["RunContext"], Any]
    required: bool = True
    rollback: Callable[["RunContext"], Any] | None = None
    destructive: bool = False
    prompt: str | None = None


@dataclass
class RunContext:
    name: str
    paths: dict[str, Path] = field(default_factory=dict)
    credentials: dict[str, str] = field(default_factory=dict)
    answers: dict[str, str] = field(default_factory=dict)
    assume_yes: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    records: list[LogRecord] = field(default_factory=list)
    state: RunState = RunState.NOT_STARTED
    input_fn: Callable[[str], str] = input
    secret_fn: Callable[[str], str] = getpass.getpass
    rollbacks: list[tuple[str, Callable[[], Any]]] = field(default_factory=list)

    @property
    def log_file(self) -> Path | None:
        return self.paths.get("log_file")

    def record(self, level: str, message: str, step: str | None = None, phase: str = "step") -> LogRecord:
        entry = LogRecord(datetime.now(), level, message, step, phase)
        self.records.append(entry)
        logging.log(LEVELS[level], "[%s] %s", self.name, message)
        return entry

    def register_rollback(self, label: str, fn: Callable[[], Any]) -> None:
        self.rollbacks.append((label, fn))

    def confirm(self, prompt: str, default: bool = False) -> bool:
        return prompts.confirm(prompt, default, self.assume_yes, self.input_fn)

    def ask(self, key: str, prompt: str, secret: bool = False) -> str:
        """Return a pre-supplied answer for ``key`` or ask the operator."""
        if key in self.answers:
            return self.answers[key]
        return prompts.ask(prompt, secret, self.input_fn, self.secret_fn)


def _is_required(step: Step, overrides: dict[str, bool] | None) -> bool:
    if overrides and step.name in overrides:
        return overrides[step.name]
    return step.required


def _rollback(ctx: RunContext) -> None:
    ctx.state = RunState.ROLLING_BACK
    while ctx.rollbacks:
        label, fn = ctx.rollbacks.pop()
        try:
            fn()
        except KeyboardInterrupt:
            ctx.record("error", f"rollback of {label} interrupted", label, "rollback")
            status_fail(f"rollback {label}: interrupted")
            continue
        except Exception as err:
            ctx.record("error", f"rollback of {label} failed: {err}", label, "rollback")
            status_fail(f"rollback {label}: {err}")
            continue
        ctx.record("info", f"rolled back {label}", label, "rollback")
        status_warn(f"rolled back {label}")
    ctx.state = RunState.ROLLED_BACK
    ctx.record("error", RunState.ROLLED_BACK.value, phase="terminal")


def _fail(ctx: RunContext, step: Step, err: BaseException) -> RunFailed:
    ctx.state = RunState.FAILED
    _rollback(ctx)
    return RunFailed(step.name, err, ctx.log_file)


def run(steps: list[Step], ctx: RunContext, overrides: dict[str, bool] | None = None) -> RunState:
    """Execute ``steps`` in order; raise RunFailed once rolled back."""
    if ctx.state is not RunState.NOT_STARTED:
        raise ProvisionError(f"run context '{ctx.name}' already used (state={ctx.state.value})")
    ctx.state = RunState.RUNNING
    log(f"RUN START {ctx.name}: {', '.join(s.name for s in steps)}")

    for step in steps:
        required = _is_required(step, overrides)
        log(f"STEP {step.name} (required={required})")
        try:
            if step.destructive:
                question = step.prompt or f"{step.name}: this cannot be undone. Continue?"
                if not ctx.confirm(question):
                    raise ConfirmationDeclined(f"{step.name}: not confirmed")
            step.action(ctx)
        except KeyboardInterrupt:
            ctx.record("error", f"{step.name}: interrupted", step.name)
            status_fail(f"{step.name}: interrupted")
            raise _fail(ctx, step, RunAborted("interrupted by operator")) from None
        except Exception as err:
            if required:
                ctx.record("error", f"{step.name}: {err}", step.name)
                status_fail(f"{step.name}: {err}")
                raise _fail(ctx, step, err) from err
            ctx.record("warn", f"{step.name}: {err}", step.name)
            status_warn(f"{step.name}: {err}")
            continue

        ctx.record("ok", step.name, step.name)
        status_pass(step.name)
        if step.rollback is not None:
            undo = step.rollback
            ctx.register_rollback(step.name, lambda undo=undo: undo(ctx))

    ctx.state = RunState.COMPLETED
    ctx.record("ok", RunState.COMPLETED.value, phase="terminal")
    return ctx.state


def context_for(name: str, assume_yes: bool = False, log_dir: Path | None = None, **paths: Path) -> RunContext:
    """New context with a timestamped log file and answers taken from the environment."""
    log_file = Path(log_dir or LOG_DIR) / f"{name}-{stamp()}.log"
    return RunContext(
        name=name,
        paths={"log_file": log_file, **paths},
        answers=prompts.answers_from_env(),
        assume_yes=assume_yes,
    )
