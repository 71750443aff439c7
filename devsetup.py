#!/usr/bin/env python3
"""CLI to provision a local PHP/WordPress workstation.

Inputs: a workflow name, a site name for ``site``, and optional flags.
Side effects: installs packages, rewrites service configs under /etc, starts
services, creates databases and site directories. Each run writes its own
log file under the Www directory's _logs folder and rolls back on failure.
"""
import sys

from config import step_overrides
from provision import nginx, php, shell, stack
from provision.errors import ProvisionError, RunFailed
from provision.orchestrator import run
from provision.utils import init_logging, status_fail, status_pass
from provision.wordpress import installer, site

# ─── CONFIG ──────────────────────────────────────────────────────────────
FLAG_YES = "--yes"
FLAG_STRICT = "--strict"
FLAG_DIAGNOSE = "--diagnose"
FLAG_BACKUP = "--backup"
FLAG_RESTORE = "--restore"
FLAG_REMOVE = "--remove"
FLAG_CHECK = "--check"
FLAG_INFO = "--info"
FLAG_HELP = ("-h", "--help")

USAGE = """\
usage:
  devsetup site NAME [--diagnose|--backup|--restore|--remove] [--yes] [--strict]
  devsetup php [--check|--backup|--restore|--info] [--yes] [--strict]
  devsetup nginx|stack|shell [--yes] [--strict]"""

SITE_OPS = (FLAG_DIAGNOSE, FLAG_BACKUP, FLAG_RESTORE, FLAG_REMOVE)
PHP_OPS = (FLAG_CHECK, FLAG_BACKUP, FLAG_RESTORE, FLAG_INFO)
COMMON_FLAGS = (FLAG_YES, FLAG_STRICT)


# ─── Helpers ─────────────────────────────────────────────────────────────
def usage(rc: int = 1) -> int:
    print(USAGE)
    return rc


def _overrides(steps, strict: bool) -> dict[str, bool]:
    if strict:
        return {s.name: True for s in steps}
    return step_overrides()


def execute(steps, ctx, strict: bool = False, summary=None) -> int:
    """Run ``steps`` with per-run logging; 0 on completion, 1 on failure."""
    init_logging(ctx.log_file)
    try:
        run(steps, ctx, _overrides(steps, strict))
    except RunFailed as err:
        status_fail(str(err))
        print(f"Check log: {ctx.log_file}")
        return 1
    status_pass(f"{ctx.name} finished")
    if summary is not None:
        summary(ctx)
    return 0


def _pick(flags: list[str], allowed: tuple[str, ...]) -> str | None:
    chosen = [f for f in flags if f in allowed]
    if len(chosen) > 1:
        raise ValueError(f"conflicting options: {' '.join(chosen)}")
    return chosen[0] if chosen else None


# ─── Workflows ───────────────────────────────────────────────────────────
def cmd_site(name: str, op: str | None, assume_yes: bool, strict: bool) -> int:
    ctx = site.make_context(name, assume_yes)
    if op == FLAG_DIAGNOSE:
        rc = execute(site.diagnose_steps(), ctx, strict)
        site.print_diagnosis(ctx)
        return rc
    if op == FLAG_BACKUP:
        return execute(site.backup_steps(), ctx, strict, site.print_backup_summary)
    if op == FLAG_RESTORE:
        return execute(site.restore_steps(), ctx, strict, site.print_backup_summary)
    if op == FLAG_REMOVE:
        return execute(installer.remove_steps(), ctx, strict, installer.print_removal)
    return execute(installer.install_steps(), ctx, strict, installer.print_summary)


def cmd_php(op: str | None, assume_yes: bool, strict: bool) -> int:
    ctx = php.make_context(assume_yes)
    if op is None:
        return execute(php.configure_steps(), ctx, strict, php.print_summary)
    init_logging(ctx.log_file)
    if op == FLAG_CHECK:
        return 0 if php.check_php_config() else 1
    if op == FLAG_BACKUP:
        return 0 if php.backup_php_ini(ctx.paths["php_ini"]) else 1
    if op == FLAG_RESTORE:
        return 0 if php.restore_php_ini(ctx) else 1
    return php.php_info()


WORKFLOWS = {
    "nginx": (nginx.make_context, nginx.setup_steps, nginx.print_summary),
    "stack": (stack.make_context, stack.setup_steps, stack.print_summary),
    "shell": (shell.make_context, shell.setup_steps, shell.print_summary),
}


def main(argv: list[str]) -> int:
    flags = [a for a in argv if a.startswith("-")]
    args = [a for a in argv if not a.startswith("-")]
    if any(f in FLAG_HELP for f in flags):
        return usage(0)
    if not args:
        return usage()
    workflow = args[0]
    allowed = COMMON_FLAGS + {"site": SITE_OPS, "php": PHP_OPS}.get(workflow, ())
    unknown = [f for f in flags if f not in allowed]
    if unknown:
        print(f"unknown option: {' '.join(unknown)}")
        return usage()
    assume_yes = FLAG_YES in flags
    strict = FLAG_STRICT in flags
    try:
        if workflow == "site":
            if len(args) < 2:
                return usage()
            return cmd_site(args[1], _pick(flags, SITE_OPS), assume_yes, strict)
        if workflow == "php":
            return cmd_php(_pick(flags, PHP_OPS), assume_yes, strict)
        if workflow in WORKFLOWS:
            make_context, steps, summary = WORKFLOWS[workflow]
            return execute(steps(), make_context(assume_yes), strict, summary)
    except (ProvisionError, ValueError) as err:
        status_fail(str(err))
        return 1
    except KeyboardInterrupt:
        status_fail("interrupted")
        return 130
    return usage()


def entry() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    entry()
