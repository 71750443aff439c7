"""Tests for the step runner: ordering, rollback, prompts and records."""

import logging

import pytest

from provision.errors import ConfirmationDeclined, ProvisionError, RunAborted, RunFailed
from provision.orchestrator import RunState, Step, run
from provision.utils import init_logging


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------

def tracked(name, journal, fail=False, undo=True):
    """Step that appends to ``journal`` when it runs and when it is undone."""

    def action(ctx):
        journal.append(f"do {name}")
        if fail:
            raise ProvisionError(f"{name} broke")

    def rollback(ctx):
        journal.append(f"undo {name}")

    return Step(name, action, rollback=rollback if undo else None)


def step_records(ctx):
    return [r for r in ctx.records if r.phase == "step"]


def terminal_records(ctx):
    return [r for r in ctx.records if r.phase == "terminal"]


# -------------------------------------------------------------------------
# Successful runs
# -------------------------------------------------------------------------

def test_all_steps_succeed(make_ctx):
    journal = []
    ctx = make_ctx()
    steps = [tracked(n, journal) for n in ("a", "b", "c")]

    assert run(steps, ctx) is RunState.COMPLETED
    assert journal == ["do a", "do b", "do c"]
    assert [r.level for r in step_records(ctx)] == ["ok", "ok", "ok"]
    assert [r.message for r in terminal_records(ctx)] == ["Completed"]


def test_context_cannot_be_reused(make_ctx):
    ctx = make_ctx()
    run([], ctx)
    with pytest.raises(ProvisionError):
        run([], ctx)


# -------------------------------------------------------------------------
# Failure and rollback
# -------------------------------------------------------------------------

def test_required_failure_rolls_back_in_reverse(make_ctx):
    journal = []
    ctx = make_ctx()
    steps = [
        tracked("one", journal),
        tracked("two", journal),
        tracked("three", journal, fail=True),
        tracked("four", journal),
    ]

    with pytest.raises(RunFailed) as info:
        run(steps, ctx)

    assert info.value.step == "three"
    assert journal == ["do one", "do two", "do three", "undo two", "undo one"]
    assert ctx.state is RunState.ROLLED_BACK
    assert [r.message for r in terminal_records(ctx)] == ["RolledBack"]
    assert len(step_records(ctx)) == 3


def test_handlers_run_exactly_once(make_ctx):
    calls = []
    ctx = make_ctx()

    def setup(ctx):
        ctx.register_rollback("setup", lambda: calls.append("setup"))

    def broken(ctx):
        raise ProvisionError("no")

    with pytest.raises(RunFailed):
        run([Step("setup", setup), Step("broken", broken)], ctx)

    assert calls == ["setup"]
    assert ctx.rollbacks == []


def test_handler_registered_by_failing_step_is_run(make_ctx):
    calls = []
    ctx = make_ctx()

    def half_done(ctx):
        ctx.register_rollback("partial", lambda: calls.append("partial"))
        raise ProvisionError("died halfway")

    with pytest.raises(RunFailed):
        run([Step("half", half_done)], ctx)

    assert calls == ["partial"]


def test_optional_failure_continues(make_ctx):
    journal = []
    ctx = make_ctx()
    flaky = tracked("flaky", journal, fail=True)
    flaky.required = False
    steps = [tracked("first", journal), flaky, tracked("last", journal)]

    assert run(steps, ctx) is RunState.COMPLETED
    assert journal == ["do first", "do flaky", "do last"]
    levels = [r.level for r in step_records(ctx)]
    assert levels == ["ok", "warn", "ok"]


def test_override_makes_optional_step_fatal(make_ctx):
    journal = []
    ctx = make_ctx()
    flaky = tracked("flaky", journal, fail=True)
    flaky.required = False

    with pytest.raises(RunFailed):
        run([tracked("first", journal), flaky], ctx, overrides={"flaky": True})

    assert journal[-1] == "undo first"


def test_rollback_failure_does_not_mask_cause(make_ctx):
    calls = []
    ctx = make_ctx()

    def stuck():
        raise OSError("stuck")

    def setup(ctx):
        ctx.register_rollback("good", lambda: calls.append("good"))
        ctx.register_rollback("bad", stuck)

    def broken(ctx):
        raise ProvisionError("original")

    with pytest.raises(RunFailed) as info:
        run([Step("setup", setup), Step("broken", broken)], ctx)

    assert str(info.value.cause) == "original"
    assert calls == ["good"]
    rollback = [r for r in ctx.records if r.phase == "rollback"]
    assert [r.level for r in rollback] == ["error", "info"]
    assert "stuck" in rollback[0].message


def test_interrupted_handler_does_not_stop_rollback(make_ctx):
    calls = []
    ctx = make_ctx()

    def impatient():
        raise KeyboardInterrupt

    def setup(ctx):
        ctx.register_rollback("first", lambda: calls.append("first"))
        ctx.register_rollback("slow", impatient)

    def broken(ctx):
        raise ProvisionError("original")

    with pytest.raises(RunFailed) as info:
        run([Step("setup", setup), Step("broken", broken)], ctx)

    assert str(info.value.cause) == "original"
    assert calls == ["first"]
    assert ctx.state is RunState.ROLLED_BACK
    rollback = [r for r in ctx.records if r.phase == "rollback"]
    assert [r.level for r in rollback] == ["error", "info"]
    assert "interrupted" in rollback[0].message
    assert [r.message for r in terminal_records(ctx)] == ["RolledBack"]


def test_interrupt_rolls_back_and_aborts(make_ctx):
    journal = []
    ctx = make_ctx()

    def interrupted(ctx):
        raise KeyboardInterrupt

    with pytest.raises(RunFailed) as info:
        run([tracked("first", journal), Step("wait", interrupted)], ctx)

    assert isinstance(info.value.cause, RunAborted)
    assert journal == ["do first", "undo first"]
    assert ctx.state is RunState.ROLLED_BACK


# -------------------------------------------------------------------------
# Destructive steps
# -------------------------------------------------------------------------

def test_destructive_step_declined_by_default(make_ctx, scripted_input):
    ran = []
    ctx = make_ctx(input_fn=scripted_input(""))
    step = Step("wipe", lambda c: ran.append(True), destructive=True, prompt="Wipe?")

    with pytest.raises(RunFailed) as info:
        run([step], ctx)

    assert isinstance(info.value.cause, ConfirmationDeclined)
    assert ran == []
    assert ctx.input_fn.asked == ["Wipe? [y/N]: "]


def test_destructive_step_confirmed(make_ctx, scripted_input):
    ran = []
    ctx = make_ctx(input_fn=scripted_input("y"))
    step = Step("wipe", lambda c: ran.append(True), destructive=True)

    run([step], ctx)
    assert ran == [True]


def test_assume_yes_skips_prompt(make_ctx, scripted_input):
    ran = []
    reader = scripted_input()
    ctx = make_ctx(input_fn=reader, assume_yes=True)

    run([Step("wipe", lambda c: ran.append(True), destructive=True)], ctx)

    assert ran == [True]
    assert reader.asked == []


# -------------------------------------------------------------------------
# Filesystem example
# -------------------------------------------------------------------------

def test_created_directory_removed_when_database_step_fails(make_ctx, tmp_path):
    target = tmp_path / "Www" / "blog"
    ctx = make_ctx()

    def create_dir(ctx):
        target.mkdir(parents=True)
        ctx.register_rollback("dir", lambda: target.rmdir())

    def create_database(ctx):
        raise ProvisionError("database server unreachable")

    with pytest.raises(RunFailed) as info:
        run([Step("create dir", create_dir), Step("create database", create_database)], ctx)

    assert info.value.step == "create database"
    assert not target.exists()


def test_log_file_has_one_line_per_outcome(make_ctx, tmp_path, monkeypatch):
    monkeypatch.setenv("DEVSETUP_RID", "testrid")
    log_file = tmp_path / "run.log"
    root = logging.getLogger()
    before = list(root.handlers)
    ctx = make_ctx("blog")

    def create_dir(ctx):
        ctx.register_rollback("create dir", lambda: None)

    def create_database(ctx):
        raise ProvisionError("access denied")

    init_logging(log_file)
    try:
        with pytest.raises(RunFailed):
            run([Step("create dir", create_dir), Step("create database", create_database)], ctx)
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert sum(" OK root: [blog] create dir" in ln for ln in lines) == 1
    assert sum(" ERROR root: [blog] create database: access denied" in ln for ln in lines) == 1
    assert sum("[blog] rolled back create dir" in ln for ln in lines) == 1
    assert sum(ln.endswith("[blog] RolledBack") for ln in lines) == 1
