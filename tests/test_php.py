"""Tests for the PHP configuration workflow against a scratch php.ini."""

import pytest

from provision import backups, php
from provision.errors import RunFailed
from provision.orchestrator import RunState, run


INI = """\
[PHP]
memory_limit = 128M
;upload_max_filesize = 2M
;extension=gd
;extension=mysqli
;zend_extension=opcache
"""

POOL = """\
[www]
user = http
pm.max_children = 5
"""


@pytest.fixture
def fake_php(monkeypatch):
    """Stub every system seam the workflow touches."""
    calls = {"restarts": 0, "missing": []}

    def restart(name):
        calls["restarts"] += 1

    monkeypatch.setattr(php, "is_root", lambda: False)
    monkeypatch.setattr(php, "install_packages", lambda pkgs: [])
    monkeypatch.setattr(php, "loaded_modules", lambda: set())
    monkeypatch.setattr(php, "current_settings", lambda keys=(): {})
    monkeypatch.setattr(php, "missing_extensions", lambda: list(calls["missing"]))
    monkeypatch.setattr(php, "restart_service", restart)
    monkeypatch.setattr(php, "service_active", lambda name: True)
    monkeypatch.setattr(php, "VERIFY_DELAY", 0)
    return calls


@pytest.fixture
def php_ctx(make_ctx, tmp_path):
    ini = tmp_path / "php.ini"
    ini.write_text(INI, encoding="utf-8")
    pool = tmp_path / "www.conf"
    pool.write_text(POOL, encoding="utf-8")
    return make_ctx("php", paths={"php_ini": ini, "fpm_pool": pool})


def test_configure_rewrites_ini(fake_php, php_ctx):
    assert run(php.configure_steps(), php_ctx) is RunState.COMPLETED

    lines = php_ctx.paths["php_ini"].read_text(encoding="utf-8").splitlines()
    assert "memory_limit = 256M" in lines
    assert "upload_max_filesize = 64M" in lines
    assert "extension=gd" in lines
    assert "extension=mysqli" in lines
    assert "zend_extension=opcache" in lines
    assert "[opcache]" in lines
    assert "opcache.enable=1" in lines
    assert php_ctx.data["php_ini_backup"].exists()

    pool = php_ctx.paths["fpm_pool"].read_text(encoding="utf-8")
    assert "pm.max_children = 50" in pool
    assert "pm.start_servers" not in pool


def test_failed_verification_restores_ini(fake_php, php_ctx):
    fake_php["missing"] = ["gd"]

    with pytest.raises(RunFailed) as info:
        run(php.configure_steps(), php_ctx)

    assert info.value.step == "restart and verify php-fpm"
    assert php_ctx.paths["php_ini"].read_text(encoding="utf-8") == INI
    assert php_ctx.paths["fpm_pool"].read_text(encoding="utf-8") == POOL
    assert php_ctx.state is RunState.ROLLED_BACK


def test_missing_pool_is_only_a_warning(fake_php, php_ctx):
    php_ctx.paths["fpm_pool"].unlink()

    assert run(php.configure_steps(), php_ctx) is RunState.COMPLETED
    warned = [r.step for r in php_ctx.records if r.level == "warn"]
    assert warned == ["configure php-fpm pool"]


def test_refuses_root(fake_php, php_ctx, monkeypatch):
    monkeypatch.setattr(php, "is_root", lambda: True)
    with pytest.raises(RunFailed) as info:
        run(php.configure_steps(), php_ctx)
    assert info.value.step == "refuse root"


def test_restore_php_ini_from_answer(fake_php, php_ctx):
    ini = php_ctx.paths["php_ini"]
    backups.backup_file(ini, when="20260101-000000")
    ini.write_text("memory_limit = 1M\n", encoding="utf-8")
    php_ctx.answers["restore_choice"] = "1"
    php_ctx.assume_yes = True

    assert php.restore_php_ini(php_ctx) is True
    assert ini.read_text(encoding="utf-8") == INI
    assert fake_php["restarts"] == 1


def test_restore_declined_keeps_ini(fake_php, php_ctx, scripted_input):
    ini = php_ctx.paths["php_ini"]
    backups.backup_file(ini, when="20260101-000000")
    ini.write_text("memory_limit = 1M\n", encoding="utf-8")
    php_ctx.input_fn = scripted_input("1", "n")

    assert php.restore_php_ini(php_ctx) is False
    assert ini.read_text(encoding="utf-8") == "memory_limit = 1M\n"


def test_restore_without_backups(php_ctx, capsys):
    assert php.restore_php_ini(php_ctx) is False
    assert "No backups found" in capsys.readouterr().out
