"""Install and remove one WordPress site served from the Www directory."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from config import (
    DEFAULT_WP_EMAIL,
    DEFAULT_WP_PASS,
    DEFAULT_WP_USER,
    REQUIRED_TOOLS,
    SERVICES,
    WP_CLI_INSTALL_PATH,
    WP_CLI_PATH,
    WP_CLI_URL,
    WP_DEFAULT_PLUGINS,
    WP_PERMALINK,
    WP_PLUGINS,
    WP_THEME,
    WP_TIMEZONE,
)
from provision import db
from provision.errors import StateConflictError
from provision.orchestrator import RunContext, Step
from provision.system import command_exists, ensure_service_running, require_tool
from provision.utils import log, remove_path, run_cmd
from . import site as wp_site
from .cli import wp_check, wp_lines


# ─── Preflight ───────────────────────────────────────────────────────────
def _check_requirements(ctx: RunContext) -> None:
    for tool, package in REQUIRED_TOOLS.items():
        if require_tool(tool, package):
            log(f"PASS: Installed {package}")


def _wp_cli_ready(ctx: RunContext) -> None:
    if command_exists(WP_CLI_PATH):
        log("WP-CLI already installed")
        return
    require_tool("curl", "curl")
    with tempfile.TemporaryDirectory() as tmp:
        phar = Path(tmp) / "wp-cli.phar"
        run_cmd(["curl", "-fsSL", "-o", str(phar), WP_CLI_URL])
        run_cmd(["sudo", "install", "-m", "755", str(phar), str(WP_CLI_INSTALL_PATH)])
    run_cmd([str(WP_CLI_INSTALL_PATH), "--info"])


def _services_running(ctx: RunContext) -> None:
    for name in SERVICES:
        if ensure_service_running(name):
            log(f"PASS: Started {name}")


def _secure_root(ctx: RunContext) -> None:
    if not db.socket_auth_available():
        log("MariaDB root already password protected")
        return
    password = db.new_root_password(ctx)
    db.set_root_password(password)
    ctx.credentials["db_root_password"] = password


def _verify_root(ctx: RunContext) -> None:
    cached = ctx.credentials.get("db_root_password")
    if cached is not None and not db.check_password(cached):
        ctx.credentials.pop("db_root_password")
    db.root_password(ctx)


# ─── Database and files ──────────────────────────────────────────────────
def _ensure_database(ctx: RunContext) -> None:
    name = ctx.data["db_name"]
    password = ctx.credentials["db_root_password"]
    if db.database_exists(name, password):
        logging.warning("Database %s already exists; reusing it", name)
        return
    db.create_database(name, password)
    ctx.register_rollback(f"database {name}", lambda: db.drop_database(name, password))


def _site_directory(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    if wp_site.site_has_wp_config(site):
        if not ctx.confirm(f"{site} already holds a WordPress install. Overwrite it?"):
            raise StateConflictError(f"{site} already contains wp-config.php")
        ctx.data["overwrite"] = True
    if site.exists():
        return
    site.mkdir(parents=True)
    ctx.data["site_dir_created"] = True
    ctx.register_rollback(f"site directory {site}", lambda: wp_site.remove_site_dir(ctx))


def _core_download(ctx: RunContext) -> None:
    command = ["core", "download"]
    if ctx.data.get("overwrite"):
        command.append("--force")
    wp_check(ctx.paths["site_dir"], command)


def _config_create(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    config_file = site / "wp-config.php"
    existed = config_file.exists()
    wp_check(
        site,
        [
            "config", "create",
            f"--dbname={ctx.data['db_name']}",
            "--dbuser=root",
            f"--dbpass={ctx.credentials['db_root_password']}",
            "--skip-check",
            "--force",
        ],
    )
    if not existed and not ctx.data.get("site_dir_created"):
        ctx.register_rollback("wp-config.php", lambda: remove_path(config_file))


def _core_install(ctx: RunContext) -> None:
    wp_check(
        ctx.paths["site_dir"],
        [
            "core", "install",
            f"--url={ctx.data['site_url']}",
            f"--title=My {ctx.name}",
            f"--admin_user={DEFAULT_WP_USER}",
            f"--admin_password={DEFAULT_WP_PASS}",
            f"--admin_email={DEFAULT_WP_EMAIL}",
            "--skip-email",
        ],
    )


# ─── Cosmetics ───────────────────────────────────────────────────────────
def _permalinks(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], ["rewrite", "structure", WP_PERMALINK, "--hard"])


def _theme(theme: str):
    def action(ctx: RunContext) -> None:
        wp_check(ctx.paths["site_dir"], ["theme", "install", theme, "--activate"])
        ctx.data["theme"] = theme
    return action


def _prune_themes(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    inactive = wp_lines(site, ["theme", "list", "--status=inactive", "--field=name"])
    if not inactive:
        return
    wp_check(site, ["theme", "delete"] + inactive)


def _plugin(plugin: str):
    def action(ctx: RunContext) -> None:
        wp_check(ctx.paths["site_dir"], ["plugin", "install", plugin, "--activate"])
        ctx.data.setdefault("plugins", []).append(plugin)
    return action


def _remove_default_plugins(ctx: RunContext) -> None:
    site = ctx.paths["site_dir"]
    installed = set(wp_lines(site, ["plugin", "list", "--field=name"]))
    doomed = [p for p in WP_DEFAULT_PLUGINS if p in installed]
    if doomed:
        wp_check(site, ["plugin", "delete"] + doomed)


def tagline(theme: str | None, plugins: list[str]) -> str:
    parts = [p for p in [theme] + list(plugins) if p]
    if not parts:
        return "Built with WordPress"
    return "Built with WordPress, " + " & ".join(parts)


def _tagline(ctx: RunContext) -> None:
    text = tagline(ctx.data.get("theme"), ctx.data.get("plugins", []))
    wp_check(ctx.paths["site_dir"], ["option", "update", "blogdescription", text])


def _timezone(ctx: RunContext) -> None:
    wp_check(ctx.paths["site_dir"], ["option", "update", "timezone_string", WP_TIMEZONE])


def install_steps(theme: str | None = WP_THEME, plugins=WP_PLUGINS) -> list[Step]:
    steps = [
        Step("check requirements", _check_requirements),
        Step("wp-cli ready", _wp_cli_ready),
        Step("services running", _services_running),
        Step("secure mariadb root", _secure_root),
        Step("verify mariadb root", _verify_root),
        Step("ensure database", _ensure_database),
        Step("site directory", _site_directory),
        Step("download wordpress core", _core_download),
        Step("create wp-config.php", _config_create),
        Step("install wordpress", _core_install),
        Step("set permalinks", _permalinks, required=False),
    ]
    if theme and theme != "default":
        steps.append(Step(f"theme {theme}", _theme(theme), required=False))
        steps.append(Step("remove inactive themes", _prune_themes, required=False))
    for plugin in plugins:
        steps.append(Step(f"plugin {plugin}", _plugin(plugin), required=False))
    steps += [
        Step("remove default plugins", _remove_default_plugins, required=False),
        Step("set tagline", _tagline, required=False),
        Step("set timezone", _timezone, required=False),
    ]
    return steps


def print_summary(ctx: RunContext) -> None:
    url = ctx.data["site_url"]
    print(f"\nWordPress site ready: {url}")
    print(f"  Admin:    {url}/wp-admin")
    print(f"  User:     {DEFAULT_WP_USER} / {DEFAULT_WP_PASS}")
    print(f"  Database: {ctx.data['db_name']}")
    print(f"  Path:     {ctx.paths['site_dir']}")
    skipped = [r.message for r in ctx.records if r.phase == "step" and r.level == "warn"]
    if skipped:
        print("  Skipped:")
        for message in skipped:
            print(f"    - {message}")
    print(f"  Log:      {ctx.log_file}\n")


# ─── Removal ─────────────────────────────────────────────────────────────
def _snapshot(ctx: RunContext) -> None:
    # the snapshot outlives the run
    wp_site.snapshot(ctx, undo=False)


def _drop_database(ctx: RunContext) -> None:
    name = wp_site.configured_db_name(ctx)
    password = db.root_password(ctx)
    db.drop_database(name, password)
    log(f"PASS: Dropped database {name}")


def _delete_site_dir(ctx: RunContext) -> None:
    wp_site.remove_site_dir(ctx)


def remove_steps() -> list[Step]:
    return [
        Step("snapshot before removal", _snapshot, required=False),
        Step(
            "drop database",
            _drop_database,
            destructive=True,
            prompt="Drop the site's database? This cannot be undone.",
        ),
        Step(
            "delete site directory",
            _delete_site_dir,
            destructive=True,
            prompt="Delete the site's files? This cannot be undone.",
        ),
    ]


def print_removal(ctx: RunContext) -> None:
    print(f"\nRemoved {ctx.name}")
    archive = ctx.data.get("archive")
    if archive and Path(archive).exists():
        print(f"  Snapshot: {archive}")
    print(f"  Log:      {ctx.log_file}\n")
