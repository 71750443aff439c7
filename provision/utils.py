"""Utility helpers kept dependency-free.

- init_logging: configure console + per-run file logging with run-id.
- status_pass/status_warn/status_fail: concise console status lines (with run-id).
- run_cmd/try_cmd: thin wrappers over subprocess.run with captured output.
- log: debug-level logger for normal status lines (file-oriented).
- db_ident: normalized identifier for DB names.
- write_text_atomic/copy_file: file writes that fall back to sudo for /etc.
- parse_json_relaxed: tolerant JSON parsing for WP-CLI output.
"""

import json
import logging
import os
import re
import shlex
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, List, Sequence

from provision.errors import CommandError, MissingDependencyError


OK = 25
logging.addLevelName(OK, "OK")

_RUN_ID = ""


def _gen_run_id() -> str:
    import uuid

    return uuid.uuid4().hex[:8]


def stamp() -> str:
    return time.strftime("%Y%m%d-%H%M%S")


def init_logging(logfile: Path | None = None, run_id: str | None = None) -> str:
    """Initialize logging with a quiet console and a per-run file handler.

    - Console: CRITICAL only; status lines are printed by status_*.
    - File: DEBUG+, rich format, appended to ``logfile``.
    Returns the run-id used.
    """
    global _RUN_ID
    rid = run_id or _RUN_ID or os.environ.get("DEVSETUP_RID") or _gen_run_id()
    _RUN_ID = rid

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Quiet any pre-existing console handlers
    for h in list(root.handlers):
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler):
            h.setLevel(logging.CRITICAL)

    if logfile is not None:
        logfile = Path(logfile)
        logfile.parent.mkdir(parents=True, exist_ok=True)
        has_file = any(
            isinstance(h, logging.FileHandler)
            and getattr(h, "baseFilename", "") == str(logfile.resolve())
            for h in root.handlers
        )
        if not has_file:
            fh = logging.FileHandler(logfile, mode="a", encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S",
                )
            )
            root.addHandler(fh)

    # Add a super-quiet console handler if none exist
    if not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root.handlers
    ):
        ch = logging.StreamHandler()
        ch.setLevel(logging.CRITICAL)
        ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(ch)

    logging.debug("Logging initialized. run_id=%s file=%s", rid, logfile)
    os.environ["DEVSETUP_RID"] = rid
    return rid


def _rid() -> str:
    return _RUN_ID or os.environ.get("DEVSETUP_RID", "--------")


def status_pass(msg: str) -> None:
    print(f"PASS: {msg} [{_rid()}]")


def status_warn(msg: str) -> None:
    print(f"WARN: {msg} [{_rid()}]")


def status_fail(msg: str) -> None:
    print(f"FAIL: {msg} [{_rid()}]", flush=True)


def log(msg: str) -> None:
    # File-oriented normal progress; stays out of console noise.
    logging.debug(msg)


def _fmt_cmd(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in args)


def try_cmd(
    args: Sequence[str],
    env: dict | None = None,
    input_text: str | None = None,
    timeout: int | None = None,
) -> tuple[int, str, str]:
    """Run a command and return (exit code, stdout, stderr) without raising."""
    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)
    try:
        proc = subprocess.run(
            [str(a) for a in args],
            text=True,
            capture_output=True,
            env=full_env,
            input=input_text,
            timeout=timeout,
        )
    except FileNotFoundError:
        return 127, "", f"command not found: {args[0]}"
    except subprocess.TimeoutExpired:
        return 124, "", f"timeout after {timeout}s"
    return proc.returncode, (proc.stdout or ""), (proc.stderr or "")


def run_cmd(
    args: List[str],
    env: dict | None = None,
    input_text: str | None = None,
    timeout: int | None = None,
) -> str:
    """Run a command; return stdout or raise CommandError with its output."""
    rc, out, err = try_cmd(args, env=env, input_text=input_text, timeout=timeout)
    shown = _fmt_cmd(args)
    if rc == 127 and not out and err.startswith("command not found"):
        raise MissingDependencyError(str(args[0]))
    if rc != 0:
        logging.error("%s exit=%s\nSTDOUT: %s\nSTDERR: %s", shown, rc, out.strip(), err.strip())
        raise CommandError(list(map(str, args)), rc, out, err)
    log(f"PASS: {shown}")
    if out.strip():
        logging.debug("STDOUT: %s", out.strip())
    return out


def db_ident(name: str) -> str:
    parts: list[str] = []
    for char in name:
        if char.isalnum():
            parts.append(char)
            continue
        parts.append("_")
    identifier = "".join(parts)
    return identifier


def is_safe_child(path: Path, root: Path, name: str | None = None) -> bool:
    """True when ``path`` resolves strictly inside ``root`` (and is named ``name``)."""
    try:
        resolved = path.resolve()
        base = root.resolve()
    except OSError:
        return False
    if resolved == base or not resolved.is_relative_to(base):
        return False
    if name is not None and resolved.name != name:
        return False
    return True


def write_text_atomic(path: Path, text: str, mode: int | None = None) -> None:
    """Replace ``path`` atomically; use sudo install when the target is not ours."""
    path = Path(path)
    if mode is None:
        mode = path.stat().st_mode & 0o777 if path.exists() else 0o644
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w", delete=False, dir=str(path.parent), encoding="utf-8"
        ) as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = tmp.name
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, str(path))
        return
    except PermissionError:
        log(f"Permission denied writing {path}; retrying with sudo")
    with tempfile.NamedTemporaryFile(mode="w", delete=False, encoding="utf-8") as tmp:
        tmp.write(text)
        tmp_path = tmp.name
    try:
        run_cmd(["sudo", "install", "-D", "-m", format(mode, "o"), tmp_path, str(path)])
    finally:
        os.unlink(tmp_path)


def copy_file(src: Path, dest: Path) -> None:
    try:
        shutil.copy2(src, dest)
    except PermissionError:
        run_cmd(["sudo", "cp", "-p", str(src), str(dest)])


def remove_path(path: Path) -> None:
    path = Path(path)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except PermissionError:
        run_cmd(["sudo", "rm", "-rf", str(path)])


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*[A-Za-z]", "", text)


def parse_json_relaxed(text: str, default: Any) -> Any:
    """Parse JSON with basic tolerance for noise.

    - Strips BOM and ANSI codes
    - Extracts substring between first '[' and last ']' or first '{' and last '}'
    - Returns default on failure
    """
    if text is None:
        return default
    s = _strip_ansi(text.lstrip("\ufeff").strip())
    try:
        return json.loads(s)
    except ValueError:
        pass
    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        lb = s.find(open_ch)
        rb = s.rfind(close_ch)
        if lb != -1 and rb > lb:
            try:
                return json.loads(s[lb : rb + 1])
            except ValueError:
                continue
    return default
