"""Package manager, service manager and tool checks."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Iterable

from config import AUTO_INSTALL, PACKAGE_MANAGER
from provision.errors import MissingDependencyError
from provision.utils import log, run_cmd, try_cmd

PACKAGE_MANAGERS = {
    "pacman": {
        "install": ["sudo", "pacman", "-S", "--needed", "--noconfirm"],
        "query": ["pacman", "-Qi"],
        "upgrade": ["sudo", "pacman", "-Syu", "--noconfirm"],
    },
    "apt": {
        "install": ["sudo", "apt-get", "install", "-y"],
        "query": ["dpkg", "-s"],
        "upgrade": ["sudo", "apt-get", "update", "-y"],
    },
    "dnf": {
        "install": ["sudo", "dnf", "install", "-y"],
        "query": ["rpm", "-q"],
        "upgrade": ["sudo", "dnf", "upgrade", "-y"],
    },
}


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_root() -> bool:
    return os.geteuid() == 0


def detect_package_manager() -> str:
    if PACKAGE_MANAGER:
        return PACKAGE_MANAGER
    for name in ("pacman", "apt", "dnf"):
        if command_exists(name):
            return name
    raise MissingDependencyError("pacman|apt|dnf", None)


def _pm(manager: str | None) -> dict:
    return PACKAGE_MANAGERS[manager or detect_package_manager()]


def package_installed(pkg: str, manager: str | None = None) -> bool:
    rc, _, _ = try_cmd(_pm(manager)["query"] + [pkg])
    return rc == 0


def install_packages(packages: Iterable[str], manager: str | None = None) -> list[str]:
    """Install the packages that are missing; return the ones installed."""
    pm = _pm(manager)
    missing = [p for p in packages if not package_installed(p, manager)]
    if not missing:
        log("All packages already installed")
        return []
    log(f"Installing: {' '.join(missing)}")
    run_cmd(pm["install"] + missing)
    return missing


def upgrade_system(manager: str | None = None) -> None:
    run_cmd(_pm(manager)["upgrade"])


def require_tool(tool: str, package: str | None = None, auto_install: bool = AUTO_INSTALL) -> bool:
    """Ensure ``tool`` is on PATH; install ``package`` when allowed.

    Returns True when the tool had to be installed.
    """
    if command_exists(tool):
        return False
    if not auto_install:
        raise MissingDependencyError(tool, package)
    logging.warning("%s not found; installing %s", tool, package or tool)
    install_packages([package or tool])
    if not command_exists(tool):
        raise MissingDependencyError(tool, package)
    return True


# ─── Services ───────────────────────────────────────────────────────────
def service_active(name: str) -> bool:
    rc, _, _ = try_cmd(["systemctl", "is-active", "--quiet", name])
    return rc == 0


def enable_service(name: str) -> None:
    run_cmd(["sudo", "systemctl", "enable", "--now", name])


def ensure_service_running(name: str) -> bool:
    """Start ``name`` when inactive; True when it had to be started."""
    if service_active(name):
        return False
    enable_service(name)
    return True


def restart_service(name: str) -> None:
    run_cmd(["sudo", "systemctl", "restart", name])


def reload_service(name: str) -> None:
    run_cmd(["sudo", "systemctl", "reload", name])
