"""MariaDB helpers used by the stack and WordPress workflows."""

from __future__ import annotations

import logging
from pathlib import Path

from config import AUTH_ATTEMPTS, DB_CHARSET, DB_CLIENT, DB_COLLATION, DB_DUMP, DB_ROOT_USER
from provision.errors import AuthenticationError, CommandError
from provision.prompts import ask_verified
from provision.utils import log, try_cmd


def _client_argv(user: str | None, sudo: bool) -> list[str]:
    argv = [DB_CLIENT]
    if user:
        argv += ["-u", user]
    if sudo:
        argv = ["sudo"] + argv
    return argv


def _mysql_try(
    sql: str,
    password: str | None = None,
    user: str | None = DB_ROOT_USER,
    sudo: bool = False,
) -> tuple[int, str, str]:
    # Password travels through the environment, never on argv.
    env = {"MYSQL_PWD": password} if password else None
    return try_cmd(_client_argv(user, sudo) + ["-e", sql], env=env)


def run_mysql(sql: str, password: str | None = None, user: str | None = DB_ROOT_USER, sudo: bool = False) -> bool:
    rc, out, err = _mysql_try(sql, password, user, sudo)
    msg = f"SQL: {sql}\nEXIT: {rc}\nSTDOUT: {out.strip()}\nSTDERR: {err.strip()}"
    if rc == 0:
        log(f"PASS: {msg}")
        return True
    logging.error(msg)
    return False


def _require(sql: str, password: str | None = None, sudo: bool = False) -> None:
    rc, out, err = _mysql_try(sql, password, sudo=sudo)
    if rc != 0:
        logging.error("SQL: %s\nEXIT: %s\nSTDERR: %s", sql, rc, err.strip())
        raise CommandError([DB_CLIENT, "-e", sql], rc, out, err)
    log(f"PASS: SQL: {sql}")


def socket_auth_available() -> bool:
    """True when root can log in through the unix socket (fresh install)."""
    rc, _, _ = _mysql_try("SELECT 1;", user=None, sudo=True)
    return rc == 0


def set_root_password(password: str) -> None:
    _require(
        f"ALTER USER '{DB_ROOT_USER}'@'localhost' IDENTIFIED BY '{_quote(password)}'; FLUSH PRIVILEGES;",
        sudo=True,
    )


def check_password(password: str, user: str = DB_ROOT_USER) -> bool:
    rc, _, _ = _mysql_try("SELECT 1;", password, user)
    return rc == 0


def database_exists(name: str, password: str | None) -> bool:
    rc, _, _ = _mysql_try(f"USE `{name}`;", password)
    return rc == 0


def create_database(name: str, password: str | None) -> None:
    _require(
        f"CREATE DATABASE `{name}` CHARACTER SET {DB_CHARSET} COLLATE {DB_COLLATION};",
        password,
    )


def drop_database(name: str, password: str | None) -> None:
    _require(f"DROP DATABASE IF EXISTS `{name}`;", password)


def secure_installation(password: str) -> None:
    """Set the root password and drop anonymous users and the test database."""
    statements = [
        f"ALTER USER '{DB_ROOT_USER}'@'localhost' IDENTIFIED BY '{_quote(password)}';",
        "DELETE FROM mysql.user WHERE User='';",
        "DROP DATABASE IF EXISTS test;",
        "DELETE FROM mysql.db WHERE Db='test' OR Db='test\\\\_%';",
        "FLUSH PRIVILEGES;",
    ]
    if socket_auth_available():
        _require(" ".join(statements), sudo=True)
    else:
        _require(" ".join(statements[1:]), password)


def dump_database(name: str, dest: Path, password: str | None) -> Path:
    env = {"MYSQL_PWD": password} if password else None
    argv = [DB_DUMP, "-u", DB_ROOT_USER, "--single-transaction", "--routines", "--triggers", name]
    rc, out, err = try_cmd(argv, env=env)
    if rc != 0:
        raise CommandError(argv, rc, "", err)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(out, encoding="utf-8")
    log(f"PASS: Dumped {name} -> {dest}")
    return dest


def load_database(name: str, src: Path, password: str | None) -> None:
    env = {"MYSQL_PWD": password} if password else None
    argv = _client_argv(DB_ROOT_USER, False) + [name]
    rc, out, err = try_cmd(argv, env=env, input_text=src.read_text(encoding="utf-8"))
    if rc != 0:
        raise CommandError(argv, rc, out, err)
    log(f"PASS: Loaded {src} into {name}")


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def root_password(ctx, attempts: int | None = None) -> str:
    """Verified root password for this run; prompts with a retry limit."""
    cached = ctx.credentials.get("db_root_password")
    if cached is not None:
        return cached
    password = ask_verified(
        lambda: ctx.ask("db_root_password", "Enter MySQL root password", secret=True),
        check_password,
        attempts or AUTH_ATTEMPTS,
        "MySQL root password",
    )
    ctx.credentials["db_root_password"] = password
    return password


def new_root_password(ctx, attempts: int | None = None) -> str:
    """Ask twice for a fresh root password; a pre-supplied answer is taken as is."""
    for _ in range(attempts or AUTH_ATTEMPTS):
        first = ctx.ask("db_new_root_password", "Enter new MySQL root password", secret=True)
        if "db_new_root_password" in ctx.answers:
            if not first:
                break
            return first
        second = ctx.ask("db_new_root_password_confirm", "Repeat new MySQL root password", secret=True)
        if first and first == second:
            return first
        print("Passwords are empty or do not match. Try again.")
    raise AuthenticationError("no usable root password entered")
