# cli.py
# Invariants:
# - All WP-CLI access goes through these wrappers; callers never add --path.
# - Commands run against an explicit site directory (--path=<site dir>).
# - Accept commands with or without leading "wp"/"--path"; sanitize duplicates.
# - Logs: one PASS/FAIL per call; console stays minimal; file logs keep details.
# - Read-ish commands get --format=json appended when the caller did not pick one.

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import time
from pathlib import Path
from typing import Any, Sequence, Tuple

from config import WP_CLI_PATH, WP_TIMEOUT
from provision.errors import CommandError, MissingDependencyError
from provision.utils import log, parse_json_relaxed

os.environ.setdefault("WP_CLI_DISABLE_AUTO_CHECK_UPDATE", "1")

# ── Noise filters ───────────────────────────────────────────────────────────────
ANSI_RE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")
NOISE_PREFIXES = (
    "PHP Warning:", "PHP Notice:", "PHP Deprecated:",
    "Warning:", "Notice:", "Deprecated:", "PHP:",
)
SECRET_OPTIONS = ("--dbpass=", "--admin_password=")


def _drop_noise_lines(text: str) -> list[str]:
    out: list[str] = []
    for ln in ANSI_RE.sub("", text).splitlines():
        ln = ln.strip()
        if not ln:
            continue
        if any(ln.startswith(p) for p in NOISE_PREFIXES):
            continue
        out.append(ln)
    return out


def _mask_parts(parts: list[str]) -> list[str]:
    """Copy of ``parts`` with password option values replaced by ***."""
    masked: list[str] = []
    for p in parts:
        for opt in SECRET_OPTIONS:
            if p.startswith(opt):
                p = opt + "***"
                break
        masked.append(p)
    return masked


def _normalize_parts(command: str | Sequence[str]) -> list[str]:
    """Accepts str (parsed with shlex) or sequence of strings."""
    if isinstance(command, str):
        return shlex.split(command.strip())
    return [str(p) for p in command]


def _sanitize_parts(parts: list[str]) -> list[str]:
    # drop any leading 'wp' or explicit binary tokens
    while parts and (parts[0] == "wp" or os.path.basename(parts[0]) == "wp"):
        parts = parts[1:]
    cleaned: list[str] = []
    skip_next = False
    for i, p in enumerate(parts):
        if skip_next:
            skip_next = False
            continue
        if p.startswith("--path="):
            continue
        if p == "--path":
            if i + 1 < len(parts) and not parts[i + 1].startswith("-"):
                skip_next = True
            continue
        cleaned.append(p)
    return cleaned


def _ensure_quiet_flags(parts: list[str]) -> list[str]:
    if "--no-color" not in parts:
        parts.append("--no-color")
    return parts


def _looks_like_read_cmd(parts: list[str]) -> bool:
    s = set(parts)
    if "list" in s or "get" in s:
        return True
    return any(p.startswith("--fields=") for p in parts)


def wp_run(site_path: Path, command, timeout: int = WP_TIMEOUT) -> Tuple[bool, str, str, int]:
    parts = _sanitize_parts(_normalize_parts(command))
    if not parts:
        logging.error("wp called with empty command")
        return False, "", "Invalid command", 1
    parts = _ensure_quiet_flags(parts)
    args = [WP_CLI_PATH, f"--path={site_path}"] + parts
    shown = "wp " + " ".join(_mask_parts(parts))

    t0 = time.monotonic()
    try:
        proc = subprocess.run(
            args,
            text=True,
            capture_output=True,
            timeout=timeout,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        raise MissingDependencyError(WP_CLI_PATH, "wp-cli")
    except subprocess.TimeoutExpired:
        dt = time.monotonic() - t0
        logging.error("%s timeout after %.1fs", shown, dt)
        return False, "", f"timeout after {dt:.1f}s", 124

    dt = time.monotonic() - t0
    ok = proc.returncode == 0
    if ok:
        log(f"PASS: {shown} ({dt:.1f}s)")
    else:
        clean_err = "\n".join(_drop_noise_lines(proc.stderr or ""))
        logging.error("%s exit=%s\nSTDERR: %s", shown, proc.returncode, clean_err.strip())
    return ok, (proc.stdout or ""), (proc.stderr or ""), proc.returncode


def wp_cmd(site_path: Path, command, timeout: int = WP_TIMEOUT) -> bool:
    ok, _, _, _ = wp_run(site_path, command, timeout=timeout)
    return ok


def wp_check(site_path: Path, command, timeout: int = WP_TIMEOUT) -> str:
    """Run a command that must succeed; return stdout or raise CommandError."""
    ok, out, err, code = wp_run(site_path, command, timeout=timeout)
    if not ok:
        parts = _sanitize_parts(_normalize_parts(command))
        raise CommandError(["wp"] + _mask_parts(parts), code, out, "\n".join(_drop_noise_lines(err)))
    return out


def wp_lines(site_path: Path, command, timeout: int = WP_TIMEOUT) -> list[str]:
    """Output of a --field=... style command, one value per line."""
    return _drop_noise_lines(wp_check(site_path, command, timeout))


def wp_cmd_json(site_path: Path, command, timeout: int = WP_TIMEOUT) -> Tuple[bool, Any]:
    parts = _sanitize_parts(_normalize_parts(command))
    if _looks_like_read_cmd(parts) and not any(p.startswith("--format=") for p in parts):
        parts = parts + ["--format=json"]
    ok, out, _, _ = wp_run(site_path, parts, timeout=timeout)
    data = parse_json_relaxed("\n".join(_drop_noise_lines(out)), default=None)
    if data is None:
        cleaned = _drop_noise_lines(out)
        data = cleaned[0] if len(cleaned) == 1 else cleaned
    return ok, data
