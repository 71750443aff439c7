"""PHP + MariaDB base stack: packages, data directory, services, hardening."""

from __future__ import annotations

from config import (
    HTTP_GROUP,
    HTTP_USER,
    MYSQL_DATA_DIR,
    PHP_FPM_SOCKET,
    PHP_FPM_WWW_CONF,
    PHP_INI,
)
from provision import db
from provision.confwriter import ConfigFile
from provision.errors import ProvisionError
from provision.orchestrator import RunContext, Step, context_for
from provision.system import enable_service, install_packages, service_active, upgrade_system
from provision.utils import log, run_cmd

PACKAGES = ("php", "php-fpm", "mariadb")
SERVICES = ("mariadb", "php-fpm")


def make_context(assume_yes: bool = False) -> RunContext:
    return context_for(
        "stack",
        assume_yes,
        php_ini=PHP_INI,
        fpm_pool=PHP_FPM_WWW_CONF,
        mysql_data=MYSQL_DATA_DIR,
    )


def _upgrade(ctx: RunContext) -> None:
    upgrade_system()


def _install(ctx: RunContext) -> None:
    install_packages(PACKAGES)


def _init_datadir(ctx: RunContext) -> None:
    data_dir = ctx.paths["mysql_data"]
    if (data_dir / "mysql").is_dir():
        log("MariaDB already initialized; skipping")
        return
    run_cmd(
        [
            "sudo",
            "mariadb-install-db",
            "--user=mysql",
            "--basedir=/usr",
            f"--datadir={data_dir}",
        ]
    )


def _enable_mariadb(ctx: RunContext) -> None:
    enable_service("mariadb")


def _secure_mariadb(ctx: RunContext) -> None:
    if db.socket_auth_available():
        password = db.new_root_password(ctx)
    else:
        password = db.root_password(ctx)
    db.secure_installation(password)
    ctx.credentials["db_root_password"] = password


def _php_pathinfo(ctx: RunContext) -> None:
    conf = ConfigFile(ctx.paths["php_ini"])
    conf.set("cgi.fix_pathinfo", "0", sep="=")
    change = conf.save()
    ctx.register_rollback("cgi.fix_pathinfo", change.revert)


def _fpm_pool(ctx: RunContext) -> None:
    conf = ConfigFile(ctx.paths["fpm_pool"])
    conf.set("user", HTTP_USER)
    conf.set("group", HTTP_GROUP)
    conf.set("listen", PHP_FPM_SOCKET)
    change = conf.save()
    ctx.register_rollback("php-fpm pool", change.revert)


def _enable_fpm(ctx: RunContext) -> None:
    enable_service("php-fpm")


def _verify(ctx: RunContext) -> None:
    down = [name for name in SERVICES if not service_active(name)]
    if down:
        raise ProvisionError(f"not running: {', '.join(down)}")


def setup_steps() -> list[Step]:
    return [
        Step("upgrade system", _upgrade, required=False),
        Step("install php and mariadb", _install),
        Step("initialize mariadb data dir", _init_datadir),
        Step("start mariadb", _enable_mariadb),
        Step("secure mariadb", _secure_mariadb),
        Step("disable cgi.fix_pathinfo", _php_pathinfo),
        Step("configure php-fpm pool", _fpm_pool),
        Step("start php-fpm", _enable_fpm),
        Step("verify services", _verify),
    ]


def print_summary(ctx: RunContext) -> None:
    print("\nPHP + MariaDB setup complete!")
    print(f"  PHP-FPM socket   : {PHP_FPM_SOCKET}")
    print(f"  PHP config file  : {ctx.paths['php_ini']}")
    print(f"  MariaDB data dir : {ctx.paths['mysql_data']}")
    print(f"  Log              : {ctx.log_file}\n")
