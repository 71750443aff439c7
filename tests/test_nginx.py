"""Tests for the Nginx workflow with sudo commands replayed locally."""

import os
from pathlib import Path

import pytest

from provision import nginx
from provision.errors import CommandError, RunFailed
from provision.orchestrator import RunState, run


@pytest.fixture
def local_sudo(monkeypatch):
    """Run mkdir/ln locally and record every other command."""
    seen = []

    def fake_run_cmd(args, **kwargs):
        args = [str(a) for a in args]
        seen.append(args)
        if args[:3] == ["sudo", "mkdir", "-p"]:
            for d in args[3:]:
                Path(d).mkdir(parents=True, exist_ok=True)
        elif args[:2] == ["sudo", "ln"]:
            link = Path(args[-1])
            if link.is_symlink():
                link.unlink()
            os.symlink(args[-2], link)
        return ""

    monkeypatch.setattr(nginx, "run_cmd", fake_run_cmd)
    monkeypatch.setattr(nginx, "install_packages", lambda pkgs: [])
    monkeypatch.setattr(nginx, "ensure_service_running", lambda name: True)
    return seen


@pytest.fixture
def nginx_ctx(make_ctx, tmp_path):
    etc = tmp_path / "etc" / "nginx"
    etc.mkdir(parents=True)
    (etc / "nginx.conf").write_text("# stock config\n", encoding="utf-8")
    return make_ctx(
        "nginx",
        paths={
            "nginx_conf": etc / "nginx.conf",
            "available_dir": etc / "sites-available",
            "enabled_dir": etc / "sites-enabled",
            "http_root": tmp_path / "srv" / "http",
            "www_dir": tmp_path / "devS" / "Www",
        },
    )


def test_render_main_config():
    text = nginx.render_main_config(Path("/etc/nginx/sites-enabled"))
    assert "include /etc/nginx/sites-enabled/*.conf;" in text
    assert "user http;" in text


def test_render_default_site():
    text = nginx.render_default_site(Path("/srv/http/Www"), Path("/home/u/devS/Www"))
    assert "root /srv/http/Www;" in text
    assert "fastcgi_pass unix:/run/php-fpm/php-fpm.sock;" in text
    assert "location ~ \\.php$ {" in text


def test_traversal_dirs_under_home():
    assert nginx.traversal_dirs(Path("/home/u/devS/Www")) == [
        Path("/home"),
        Path("/home/u"),
        Path("/home/u/devS"),
        Path("/home/u/devS/Www"),
    ]


def test_traversal_dirs_outside_home():
    assert nginx.traversal_dirs(Path("/srv/www")) == [Path("/srv/www")]


def test_setup_writes_layout(local_sudo, nginx_ctx):
    assert run(nginx.setup_steps(), nginx_ctx) is RunState.COMPLETED

    paths = nginx_ctx.paths
    assert "sites-enabled/*.conf" in paths["nginx_conf"].read_text(encoding="utf-8")
    enabled = paths["enabled_dir"] / "default.conf"
    assert enabled.is_symlink()
    assert (paths["http_root"] / "Www").resolve() == paths["www_dir"].resolve()
    assert (paths["www_dir"] / "index.php").exists()
    assert ["sudo", "nginx", "-t"] in local_sudo


def test_failed_config_test_rolls_back(local_sudo, nginx_ctx, monkeypatch):
    def broken_test():
        raise CommandError(["sudo", "nginx", "-t"], 1, "", "emerg: unknown directive")

    monkeypatch.setattr(nginx, "test_config", broken_test)

    with pytest.raises(RunFailed) as info:
        run(nginx.setup_steps(), nginx_ctx)

    paths = nginx_ctx.paths
    assert info.value.step == "test nginx config"
    assert paths["nginx_conf"].read_text(encoding="utf-8") == "# stock config\n"
    assert not paths["available_dir"].exists()
    assert not paths["enabled_dir"].exists()
    assert not (paths["http_root"] / "Www").is_symlink()
