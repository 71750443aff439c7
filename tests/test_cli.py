"""Tests for argument handling in the devsetup entry point."""

import pytest

import devsetup
from provision.errors import ProvisionError, RunFailed


@pytest.fixture
def quiet_logging(monkeypatch):
    monkeypatch.setattr(devsetup, "init_logging", lambda logfile=None: "test")


@pytest.fixture
def recorded(monkeypatch, quiet_logging):
    """Capture what execute() would run instead of running it."""
    seen = []

    def fake_execute(steps, ctx, strict=False, summary=None):
        seen.append({"steps": [s.name for s in steps], "ctx": ctx, "strict": strict})
        return 0

    monkeypatch.setattr(devsetup, "execute", fake_execute)
    return seen


@pytest.mark.parametrize("argv", [[], ["site"], ["--yes"], ["unknown"]])
def test_usage_on_stdout(argv, capsys):
    assert devsetup.main(argv) == 1
    assert "usage:" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [["-h"], ["--help"], ["php", "--help"], ["site", "blog", "-h"]])
def test_help_prints_usage(argv, recorded, capsys):
    assert devsetup.main(argv) == 0
    assert "usage:" in capsys.readouterr().out
    assert recorded == []


@pytest.mark.parametrize("argv", [
    ["site", "blog", "--diagnsoe"],
    ["nginx", "--check"],
    ["php", "--remove"],
    ["stack", "-y"],
])
def test_unknown_option_rejected(argv, recorded, capsys):
    assert devsetup.main(argv) == 1
    out = capsys.readouterr().out
    assert "unknown option" in out
    assert "usage:" in out
    assert recorded == []


def test_site_install_dispatch(recorded):
    assert devsetup.main(["site", "blog", "--yes"]) == 0
    call = recorded[0]
    assert call["ctx"].name == "blog"
    assert call["ctx"].assume_yes is True
    assert call["steps"][0] == "check requirements"


def test_site_remove_dispatch(recorded):
    assert devsetup.main(["site", "blog", "--remove"]) == 0
    assert recorded[0]["steps"] == ["snapshot before removal", "drop database", "delete site directory"]


def test_strict_flag_passed(recorded):
    devsetup.main(["nginx", "--strict"])
    assert recorded[0]["strict"] is True
    assert recorded[0]["ctx"].name == "nginx"


def test_conflicting_site_options(recorded, capsys):
    assert devsetup.main(["site", "blog", "--backup", "--remove"]) == 1
    assert "conflicting options" in capsys.readouterr().out
    assert recorded == []


def test_invalid_site_name(recorded, capsys):
    assert devsetup.main(["site", "_logs"]) == 1
    assert "invalid site name" in capsys.readouterr().out


def test_execute_reports_failure(monkeypatch, quiet_logging, capsys, make_ctx):
    def failing_run(steps, ctx, overrides):
        raise RunFailed("install wordpress", ProvisionError("boom"), ctx.log_file)

    monkeypatch.setattr(devsetup, "run", failing_run)
    ctx = make_ctx("blog")

    assert devsetup.execute([], ctx) == 1
    out = capsys.readouterr().out
    assert "FAIL: step 'install wordpress' failed: boom" in out
    assert f"Check log: {ctx.log_file}" in out


def test_execute_strict_overrides(monkeypatch, quiet_logging, make_ctx):
    seen = {}

    def fake_run(steps, ctx, overrides):
        seen.update(overrides)

    monkeypatch.setattr(devsetup, "run", fake_run)
    steps = devsetup.installer.install_steps(theme="astra", plugins=())
    devsetup.execute(steps, make_ctx("blog"), strict=True)

    assert seen["theme astra"] is True
    assert all(seen.values())


def test_php_info(monkeypatch, quiet_logging):
    monkeypatch.setattr(devsetup.php, "php_info", lambda: 0)
    assert devsetup.main(["php", "--info"]) == 0
