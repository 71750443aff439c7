"""Filesystem helpers and diagnose/backup/restore operations for one site."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from config import BACKUP_DIR, BACKUP_KEEP, REQUIRED_TOOLS, SERVICES, SITE_URL_BASE, WP_CLI_PATH, WWW_DIR
from provision import backups, nginx, php, prompts
from provision.errors import MissingDependencyError, ProvisionError, StateConflictError
from provision.orchestrator import RunContext, Step, context_for
from provision.system import command_exists, service_active
from provision.utils import db_ident, is_safe_child, log, remove_path, stamp
from .cli import wp_check, wp_cmd, wp_cmd_json

RESERVED_PREFIXES = ("_", ".")


def valid_site_name(name: str) -> bool:
    if not name or name.startswith(RESERVED_PREFIXES):
        return False
    return "/" not in name and name not in ("..",)


def make_context(name: str, assume_yes: bool = False, www_dir: Path | None = None) -> RunContext:
    if not valid_site_name(name):
        raise ProvisionError(f"invalid site name: {name!r}")
    www = Path(www_dir or WWW_DIR)
    ctx = context_for(
        name,
        assume_yes,
        www_dir=www,
        site_dir=www / name,
        backup_dir=BACKUP_DIR,
    )
    ctx.data["db_name"] = db_ident(name)
    ctx.data["site_url"] = site_url(name)
    return ctx


def site_url(name: str) -> str:
    return f"{SITE_URL_BASE.rstrip('/')}/{name}"


def site_has_wp_config(site_dir: Path) -> bool:
    return (site_dir / "wp-config.php").exists()


def remove_site_dir(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    if not site.exists():
        return
    if not is_safe_child(site, ctx.paths["www_dir"], ctx.name):
        raise StateConflictError(f"unsafe remove path {site}")
    remove_path(site)
    log(f"PASS: Removed site directory {site}")


def configured_db_name(ctx: RunContext) -> str:
    """DB_NAME from wp-config.php when readable, else the derived name."""
    site = ctx.paths["site_dir"]
    if site_has_wp_config(site):
        ok, value = wp_cmd_json(site, ["config", "get", "DB_NAME"])
        if ok and isinstance(value, str) and value:
            return value
    return ctx.data["db_name"]


# ─── Diagnose ────────────────────────────────────────────────────────────
def _diag_tools(ctx: RunContext) -> None:
    missing = [t for t in list(REQUIRED_TOOLS) + [WP_CLI_PATH] if not command_exists(t)]
    if missing:
        raise MissingDependencyError(", ".join(missing))


def _diag_services(ctx: RunContext) -> None:
    down = [s for s in SERVICES if not service_active(s)]
    if down:
        raise ProvisionError(f"not running: {', '.join(down)}")


def _diag_site_dir(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    if not site.is_dir():
        raise ProvisionError(f"{site} does not exist")
    if not site_has_wp_config(site):
        raise ProvisionError(f"{site} has no wp-config.php")


def _diag_database(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], "db check")


def _diag_installed(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], "core is-installed")


def _diag_checksums(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], "core verify-checksums")


def _diag_siteurl(ctx: RunContext) -> None:
    ok, value = wp_cmd_json(ctx.paths["site_dir"], "option get siteurl")
    if not ok:
        raise ProvisionError("could not read siteurl")
    expected = ctx.data["site_url"]
    if str(value).rstrip("/") != expected:
        raise ProvisionError(f"siteurl is {value}, expected {expected}")


def _diag_nginx(ctx: RunContext) -> None:
    nginx.test_config()


def _diag_php(ctx: RunContext) -> None:
    missing = php.missing_extensions()
    if missing:
        raise ProvisionError(f"missing PHP extensions: {' '.join(missing)}")


def diagnose_steps() -> list[Step]:
    checks = [
        ("required tools", _diag_tools),
        ("services running", _diag_services),
        ("site directory", _diag_site_dir),
        ("database connection", _diag_database),
        ("wordpress installed", _diag_installed),
        ("core checksums", _diag_checksums),
        ("site url", _diag_siteurl),
        ("nginx config", _diag_nginx),
        ("php extensions", _diag_php),
    ]
    return [Step(name, fn, required=False) for name, fn in checks]


def print_diagnosis(ctx: RunContext) -> None:
    problems = [r for r in ctx.records if r.phase == "step" and r.level != "ok"]
    print(f"\nDiagnosis for {ctx.name}: {len(problems)} problem(s)")
    for record in problems:
        print(f"  - {record.message}")
    print(f"  Log: {ctx.log_file}\n")


# ─── Backup ──────────────────────────────────────────────────────────────
def _require_site(ctx: RunContext) -> None:
    if not site_has_wp_config(ctx.paths["site_dir"]):
        raise ProvisionError(f"no WordPress site at {ctx.paths['site_dir']}")


def _plan_backup(ctx: RunContext) -> None:
    folder = backups.site_backup_dir(ctx.paths["backup_dir"], ctx.name)
    folder.mkdir(parents=True, exist_ok=True)
    archive = folder / f"{ctx.name}-{stamp()}.tar.gz"
    ctx.data["archive"] = archive
    ctx.data["dump"] = backups.archive_dump(archive)


def _export_db(ctx: RunContext, undo: bool = True) -> None:
    dump = ctx.data["dump"]
    if undo:
        ctx.register_rollback(f"remove {dump.name}", lambda: remove_path(dump))
    wp_check(ctx.paths["site_dir"], ["db", "export", str(dump)])


def _archive_files(ctx: RunContext, undo: bool = True) -> None:
    archive = ctx.data["archive"]
    if undo:
        ctx.register_rollback(f"remove {archive.name}", lambda: remove_path(archive))
    backups.archive_dir(ctx.paths["site_dir"], archive)


def _prune_backups(ctx: RunContext) -> None:
    backups.prune_site_backups(ctx.paths["backup_dir"], ctx.name, BACKUP_KEEP)


def snapshot(ctx: RunContext, undo: bool = True) -> Path:
    """Dump and archive the site outside a step list; returns the archive.

    With ``undo`` false no rollback handlers are registered, so the files
    survive a later failure of the run.
    """
    _require_site(ctx)
    _plan_backup(ctx)
    _export_db(ctx, undo)
    _archive_files(ctx, undo)
    return ctx.data["archive"]


def backup_steps() -> list[Step]:
    return [
        Step("check site", _require_site),
        Step("prepare backup", _plan_backup),
        Step("export database", _export_db),
        Step("archive site files", _archive_files),
        Step("prune old backups", _prune_backups, required=False),
    ]


# ─── Restore ─────────────────────────────────────────────────────────────
def _select_backup(ctx: RunContext) -> None:
    found = backups.list_site_backups(ctx.paths["backup_dir"], ctx.name)
    if not found:
        raise ProvisionError(f"no backups found for {ctx.name}")
    preset = ctx.answers.get("restore_choice")
    if preset is not None:
        idx = int(preset) - 1 if preset.isdigit() and 1 <= int(preset) <= len(found) else None
    elif ctx.assume_yes:
        idx = 0
    else:
        print("Available backups:\n")
        idx = prompts.choose("Select backup to restore", [p.name for p in found], ctx.input_fn)
    if idx is None:
        raise ProvisionError("invalid backup selection")
    ctx.data["restore_archive"] = found[idx]
    log(f"Selected backup {found[idx]}")


def _set_aside(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    aside = backups.site_backup_dir(ctx.paths["backup_dir"], ctx.name) / f"pre-restore-{stamp()}"
    pre_dump = None
    if site_has_wp_config(site) and wp_cmd(site, "db check"):
        pre_dump = aside.with_suffix(".sql")
        wp_check(site, ["db", "export", str(pre_dump)])
    ctx.data["pre_restore_dump"] = pre_dump
    moved = False
    if site.exists():
        shutil.move(str(site), str(aside))
        moved = True
        log(f"Moved current site to {aside}")

    def put_back() -> None:
        if site.exists():
            remove_site_dir(ctx)
        if moved:
            shutil.move(str(aside), str(site))

    ctx.register_rollback("restored site files", put_back)


def _extract(ctx: RunContext) -> None:
    top = backups.extract_archive(ctx.data["restore_archive"], ctx.paths["www_dir"])
    if top != ctx.paths["site_dir"]:
        raise ProvisionError(f"archive holds {top.name}, expected {ctx.name}")


def _import_db(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    dump = backups.archive_dump(ctx.data["restore_archive"])
    if not dump.exists():
        raise ProvisionError(f"database dump missing: {dump}")
    if not wp_cmd(site, "db check"):
        wp_check(site, "db create")
    pre_dump = ctx.data.get("pre_restore_dump")
    if pre_dump is not None:
        ctx.register_rollback("database content", lambda: wp_check(site, ["db", "import", str(pre_dump)]))
    wp_check(site, ["db", "import", str(dump)])


def _flush_cache(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], "cache flush")


def restore_steps() -> list[Step]:
    return [
        Step("select backup", _select_backup),
        Step(
            "set current site aside",
            _set_aside,
            destructive=True,
            prompt="Replace the current files and database with the selected backup?",
        ),
        Step("extract site files", _extract),
        Step("import database", _import_db),
        Step("flush cache", _flush_cache, required=False),
    ]


def print_backup_summary(ctx: RunContext) -> None:
    archive = ctx.data.get("archive")
    if archive:
        print(f"\nBackup: {archive}\nDump:   {ctx.data['dump']}")
    restored = ctx.data.get("restore_archive")
    if restored:
        print(f"\nRestored {ctx.name} from {restored.name}")
    print(f"Log:    {ctx.log_file}\n")
    logging.info("site %s backup/restore finished", ctx.name)
