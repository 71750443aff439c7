"""Configure PHP and PHP-FPM for WordPress.

Default workflow installs the PHP packages, backs up php.ini, enables the
extensions WordPress needs, raises memory/upload limits, enables OPcache,
tunes the PHP-FPM pool and restarts PHP-FPM. Any required failure restores
php.ini (and the pool file) from the backups taken by this run.

Side operations: check, backup, restore, info.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from config import (
    BACKUP_KEEP,
    FPM_POOL_SETTINGS,
    OPCACHE_SETTINGS,
    PHP_CHECK_KEYS,
    PHP_FPM_CONF,
    PHP_FPM_WWW_CONF,
    PHP_INI,
    PHP_PACKAGES,
    PHP_REQUIRED_EXTENSIONS,
    PHP_SETTINGS,
)
from provision import backups, prompts
from provision.confwriter import ADDED, ENABLED, UNCHANGED, UPDATED, ConfigFile
from provision.errors import ProvisionError
from provision.orchestrator import RunContext, Step, context_for
from provision.system import (
    command_exists,
    install_packages,
    is_root,
    restart_service,
    service_active,
)
from provision.utils import log, status_fail, status_pass, try_cmd

FPM_SERVICE = "php-fpm"
OPCACHE_MODULE = "Zend OPcache"
VERIFY_DELAY = 2.0


def make_context(assume_yes: bool = False) -> RunContext:
    return context_for("php", assume_yes, php_ini=PHP_INI, fpm_pool=PHP_FPM_WWW_CONF)


# ─── Probes ──────────────────────────────────────────────────────────────
def loaded_modules() -> set[str]:
    rc, out, _ = try_cmd(["php", "-m"])
    if rc != 0:
        return set()
    return {ln.strip() for ln in out.splitlines() if ln.strip() and not ln.startswith("[")}


def current_settings(keys=PHP_CHECK_KEYS) -> dict[str, str]:
    """Local values from ``php -i`` ("memory_limit => 256M => 256M")."""
    rc, out, _ = try_cmd(["php", "-i"])
    found: dict[str, str] = {}
    if rc != 0:
        return found
    for line in out.splitlines():
        parts = [p.strip() for p in line.split("=>")]
        if len(parts) >= 2 and parts[0] in keys:
            found[parts[0]] = parts[1]
    return found


def missing_extensions() -> list[str]:
    loaded = loaded_modules()
    return [ext for ext in PHP_REQUIRED_EXTENSIONS if ext not in loaded]


# ─── Workflow steps ──────────────────────────────────────────────────────
def _refuse_root(ctx: RunContext) -> None:
    if is_root():
        raise ProvisionError("don't run as root; sudo is used when needed")


def _install_packages(ctx: RunContext) -> None:
    ctx.data["php_packages_installed"] = install_packages(PHP_PACKAGES)


def _backup_ini(ctx: RunContext) -> None:
    ini = ctx.paths["php_ini"]
    if not ini.is_file():
        raise ProvisionError(f"php.ini not found at {ini}")
    ctx.data["php_ini_backup"] = backups.backup_file(ini, BACKUP_KEEP)


def _restore_ini(ctx: RunContext) -> None:
    backups.restore_file(ctx.data["php_ini_backup"], ctx.paths["php_ini"])
    if service_active(FPM_SERVICE):
        restart_service(FPM_SERVICE)


def _enable_extensions(ctx: RunContext) -> None:
    loaded = loaded_modules()
    conf = ConfigFile(ctx.paths["php_ini"])
    enabled = 0
    already = 0
    for ext in PHP_REQUIRED_EXTENSIONS:
        if ext in loaded:
            log(f"{ext} - already enabled")
            already += 1
            continue
        action = conf.enable("extension", ext)
        if action == UNCHANGED:
            log(f"{ext} - already uncommented")
            already += 1
            continue
        log(f"{'Enabled' if action == ENABLED else 'Added'} {ext}")
        enabled += 1
    conf.save()
    ctx.data["extensions_enabled"] = enabled
    log(f"{enabled} extension(s) enabled, {already} already enabled")


_ACTION_WORD = {UPDATED: "Updated", ENABLED: "Enabled", ADDED: "Added", UNCHANGED: "Kept"}


def _configure_ini(ctx: RunContext) -> None:
    was = current_settings(tuple(PHP_SETTINGS))
    conf = ConfigFile(ctx.paths["php_ini"])
    for key, value in PHP_SETTINGS.items():
        action = conf.set(key, value)
        log(f"{_ACTION_WORD[action]}: {key} = {value} (was: {was.get(key, 'not set')})")
    conf.save()


def _configure_opcache(ctx: RunContext) -> None:
    conf = ConfigFile(ctx.paths["php_ini"])
    if OPCACHE_MODULE in loaded_modules():
        log("OPcache already enabled")
    else:
        log(f"{_ACTION_WORD[conf.enable('zend_extension', 'opcache')]} OPcache extension")
    conf.ensure_section("opcache")
    for key, value in OPCACHE_SETTINGS.items():
        conf.set(key, value, section="opcache", sep="=")
    conf.save()


def _configure_fpm(ctx: RunContext) -> None:
    pool = ctx.paths["fpm_pool"]
    if not pool.is_file():
        raise ProvisionError(f"PHP-FPM pool config not found at {pool}; skipping")
    backup = backups.backup_file(pool, BACKUP_KEEP)
    ctx.register_rollback(f"restore {pool.name}", lambda: backups.restore_file(backup, pool))
    conf = ConfigFile(pool)
    for key, value in FPM_POOL_SETTINGS.items():
        if conf.update_existing(key, value) is None:
            log(f"{key} not present in {pool.name}; left alone")
    conf.save()


def _restart_and_verify(ctx: RunContext) -> None:
    restart_service(FPM_SERVICE)
    time.sleep(VERIFY_DELAY)
    if not service_active(FPM_SERVICE):
        raise ProvisionError("PHP-FPM is not running after restart")
    missing = missing_extensions()
    if missing:
        raise ProvisionError(f"extensions failed to load: {' '.join(missing)}")
    for key, value in current_settings().items():
        log(f"{key} => {value}")


def configure_steps() -> list[Step]:
    return [
        Step("refuse root", _refuse_root),
        Step("install php packages", _install_packages),
        Step("backup php.ini", _backup_ini, rollback=_restore_ini),
        Step("enable php extensions", _enable_extensions),
        Step("configure php.ini", _configure_ini),
        Step("configure opcache", _configure_opcache),
        Step("configure php-fpm pool", _configure_fpm, required=False),
        Step("restart and verify php-fpm", _restart_and_verify),
    ]


def print_summary(ctx: RunContext) -> None:
    print("\nConfiguration completed successfully!")
    print("  PHP packages installed, WordPress extensions enabled,")
    print("  memory/upload limits raised, OPcache enabled, PHP-FPM tuned.")
    backup = ctx.data.get("php_ini_backup")
    if backup:
        print(f"\nConfiguration backup:\n  {backup}")
    print(f"\nLog file:\n  {ctx.log_file}")
    print("\nTo restore the previous configuration: devsetup php --restore\n")


# ─── Side operations ─────────────────────────────────────────────────────
def check_php_config() -> bool:
    if not command_exists("php"):
        status_fail("PHP is not installed")
        return False
    _, version, _ = try_cmd(["php", "-v"])
    print("PHP Version:")
    print(f"  {version.splitlines()[0] if version else 'unknown'}")

    print("\nCritical Settings:")
    for key, value in current_settings().items():
        print(f"  {key} => {value}")

    print("\nLoaded Extensions:")
    missing = missing_extensions()
    loaded = [ext for ext in PHP_REQUIRED_EXTENSIONS if ext not in missing]
    if loaded:
        print(f"  Loaded: {' '.join(loaded)}")
    if missing:
        print(f"  Missing: {' '.join(missing)}")
    else:
        status_pass("All required extensions are loaded")

    print("\nPHP-FPM Status:")
    print("  Running" if service_active(FPM_SERVICE) else "  Not running")

    print("\nConfiguration Files:")
    print(f"  php.ini:          {PHP_INI}")
    print(f"  php-fpm.conf:     {PHP_FPM_CONF}")
    print(f"  www.conf:         {PHP_FPM_WWW_CONF}")
    return not missing


def backup_php_ini(ini: Path = PHP_INI) -> Path | None:
    if not ini.is_file():
        status_fail(f"php.ini not found at {ini}")
        return None
    dest = backups.backup_file(ini, BACKUP_KEEP)
    status_pass(f"Backup created: {dest}")
    return dest


def restore_php_ini(ctx: RunContext) -> bool:
    ini = ctx.paths["php_ini"]
    found = backups.list_backups(ini)
    if not found:
        status_fail("No backups found")
        return False
    labels = [
        f"{p.name} - {time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(p.stat().st_mtime))}"
        for p in found
    ]
    print("Available backups:\n")
    preset = ctx.answers.get("restore_choice")
    if preset is not None:
        idx = int(preset) - 1 if preset.isdigit() and 1 <= int(preset) <= len(found) else None
    else:
        idx = prompts.choose("Select backup to restore", labels, ctx.input_fn)
    if idx is None:
        status_fail("Invalid selection")
        return False
    selected = found[idx]
    print(f"This will replace current php.ini with: {selected.name}")
    if not ctx.confirm("Continue?"):
        logging.info("Restore declined by operator")
        return False
    backups.restore_file(selected, ini)
    status_pass(f"Configuration restored from {selected.name}")
    if ctx.confirm("Restart PHP-FPM?", default=True):
        restart_service(FPM_SERVICE)
        status_pass("PHP-FPM restarted")
    return True


def php_info() -> int:
    rc, out, err = try_cmd(["php", "-i"])
    print(out or err, end="")
    return rc
