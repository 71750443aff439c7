"""Shared configuration constants for devsetup.

Centralizes paths, credentials and tunables used by the provision modules.
Any value can be overridden with a DEVSETUP_<NAME> environment variable.
"""

import os
from pathlib import Path


def _env(name: str, default: str) -> str:
    return os.environ.get(f"DEVSETUP_{name}", default)


def _env_list(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = os.environ.get(f"DEVSETUP_{name}")
    if raw is None:
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


# ─── Paths ───────────────────────────────────────────────────────────────
WWW_DIR = Path(_env("WWW_DIR", str(Path.home() / "devS" / "Www")))
LOG_DIR = Path(_env("LOG_DIR", str(WWW_DIR / "_logs")))
BACKUP_DIR = Path(_env("BACKUP_DIR", str(WWW_DIR / "_backups")))
HTTP_ROOT = Path(_env("HTTP_ROOT", "/srv/http"))
NGINX_CONF = Path("/etc/nginx/nginx.conf")
NGINX_AVAILABLE_DIR = Path("/etc/nginx/sites-available")
NGINX_ENABLED_DIR = Path("/etc/nginx/sites-enabled")
PHP_INI = Path(_env("PHP_INI", "/etc/php/php.ini"))
PHP_FPM_CONF = Path("/etc/php/php-fpm.conf")
PHP_FPM_WWW_CONF = Path(_env("PHP_FPM_WWW_CONF", "/etc/php/php-fpm.d/www.conf"))
PHP_FPM_SOCKET = "/run/php-fpm/php-fpm.sock"
MYSQL_DATA_DIR = Path("/var/lib/mysql")
ETC_SHELLS = Path("/etc/shells")

# ─── Users ───────────────────────────────────────────────────────────────
HTTP_USER = "http"
HTTP_GROUP = "http"

# ─── Tools ───────────────────────────────────────────────────────────────
PACKAGE_MANAGER = _env("PACKAGE_MANAGER", "")  # empty: autodetect
AUTO_INSTALL = _env("AUTO_INSTALL", "1") == "1"
WP_CLI_PATH = _env("WP_CLI_PATH", "wp")
WP_CLI_INSTALL_PATH = Path("/usr/local/bin/wp")
WP_CLI_URL = "https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar"
WP_TIMEOUT = int(_env("WP_TIMEOUT", "600"))  # seconds
DB_CLIENT = "mysql"
DB_DUMP = "mysqldump"
REQUIRED_TOOLS = {"php": "php", "mysql": "mariadb", "nginx": "nginx"}
SERVICES = ("nginx", "php-fpm", "mariadb")

# ─── Database ────────────────────────────────────────────────────────────
DB_ROOT_USER = "root"
DB_CHARSET = "utf8mb4"
DB_COLLATION = "utf8mb4_unicode_ci"
AUTH_ATTEMPTS = 3

# ─── WordPress ───────────────────────────────────────────────────────────
SITE_URL_BASE = _env("SITE_URL_BASE", "http://localhost")
DEFAULT_WP_USER = _env("WP_USER", "admin")
DEFAULT_WP_PASS = _env("WP_PASS", "123")
DEFAULT_WP_EMAIL = _env("WP_EMAIL", "admin@example.com")
WP_THEME = _env("WP_THEME", "astra")
WP_PLUGINS = _env_list("WP_PLUGINS", ("elementor", "classic-editor"))
WP_DEFAULT_PLUGINS = ("hello", "akismet")
WP_PERMALINK = "/%postname%/"
WP_TIMEZONE = _env("WP_TIMEZONE", "Asia/Kolkata")

# ─── PHP ─────────────────────────────────────────────────────────────────
PHP_PACKAGES = ("php", "php-fpm", "php-gd", "php-imagick", "php-intl", "php-redis")
PHP_REQUIRED_EXTENSIONS = (
    "mysqli",
    "pdo_mysql",
    "curl",
    "gd",
    "imagick",
    "zip",
    "mbstring",
    "xml",
    "xmlwriter",
    "openssl",
    "fileinfo",
    "intl",
    "exif",
)
PHP_SETTINGS = {
    "memory_limit": "256M",
    "upload_max_filesize": "64M",
    "post_max_size": "64M",
    "max_execution_time": "300",
    "max_input_time": "300",
    "max_input_vars": "3000",
}
OPCACHE_SETTINGS = {
    "opcache.enable": "1",
    "opcache.memory_consumption": "128",
    "opcache.interned_strings_buffer": "8",
    "opcache.max_accelerated_files": "10000",
    "opcache.revalidate_freq": "2",
    "opcache.fast_shutdown": "1",
}
FPM_POOL_SETTINGS = {
    "pm.max_children": "50",
    "pm.start_servers": "5",
    "pm.min_spare_servers": "5",
    "pm.max_spare_servers": "35",
}
PHP_CHECK_KEYS = (
    "memory_limit",
    "upload_max_filesize",
    "post_max_size",
    "max_execution_time",
    "max_input_vars",
)

# ─── Shell ───────────────────────────────────────────────────────────────
OHMYZSH_INSTALLER = "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"
ZSH_PLUGIN_REPOS = {
    "zsh-autosuggestions": "https://github.com/zsh-users/zsh-autosuggestions",
    "zsh-syntax-highlighting": "https://github.com/zsh-users/zsh-syntax-highlighting.git",
}
P10K_REPO = "https://github.com/romkatv/powerlevel10k.git"

# ─── Runs ────────────────────────────────────────────────────────────────
BACKUP_KEEP = int(_env("BACKUP_KEEP", "5"))
OPTIONAL_STEPS = _env_list("OPTIONAL_STEPS")
REQUIRED_STEPS = _env_list("REQUIRED_STEPS")
ANSWER_ENV = {
    "db_root_password": "DEVSETUP_DB_ROOT_PASS",
    "db_new_root_password": "DEVSETUP_DB_NEW_ROOT_PASS",
    "restore_choice": "DEVSETUP_RESTORE_CHOICE",
}


def step_overrides() -> dict[str, bool]:
    overrides = {name: False for name in OPTIONAL_STEPS}
    overrides.update({name: True for name in REQUIRED_STEPS})
    return overrides
