"""Install Nginx with a modular sites-available/sites-enabled layout.

The default site serves the user's Www directory (linked as <http root>/Www)
with directory listing and PHP-FPM, so every site under Www is reachable as
http://localhost/<site>. Config files written by a run are restored to their
previous content if a later required step fails.
"""

from __future__ import annotations

from pathlib import Path

from config import (
    HTTP_ROOT,
    HTTP_USER,
    NGINX_AVAILABLE_DIR,
    NGINX_CONF,
    NGINX_ENABLED_DIR,
    PHP_FPM_SOCKET,
    WWW_DIR,
)
from provision.confwriter import write_file
from provision.orchestrator import RunContext, Step, context_for
from provision.system import ensure_service_running, install_packages, reload_service
from provision.utils import log, remove_path, run_cmd

SERVICE = "nginx"

MAIN_CONF_TEMPLATE = """\
# Modular Nginx config (PHP-FPM, sites-enabled includes)

user {user};
worker_processes auto;
pid /run/nginx.pid;

events {{
    worker_connections 1024;
}}

http {{
    include       mime.types;
    default_type  application/octet-stream;

    sendfile        on;
    tcp_nopush      on;
    tcp_nodelay     on;
    keepalive_timeout 65;
    types_hash_max_size 4096;

    server_tokens off;

    access_log /var/log/nginx/access.log;
    error_log  /var/log/nginx/error.log;

    gzip on;
    gzip_types text/plain text/css application/json application/javascript application/xml image/svg+xml;

    include {enabled_dir}/*.conf;
}}
"""

DEFAULT_SITE_TEMPLATE = """\
# Default site: directory listing for {www_dir}

server {{
    listen 80 default_server;
    server_name _ localhost;

    root {root_dir};
    index index.php index.html index.htm;

    access_log /var/log/nginx/default_access.log;
    error_log  /var/log/nginx/default_error.log;

    location / {{
        autoindex on;
        autoindex_exact_size off;
        autoindex_localtime on;
        try_files $uri $uri/ =404;
    }}

    location ~ \\.php$ {{
        include fastcgi_params;
        fastcgi_pass unix:{php_fpm_sock};
        fastcgi_index index.php;
        fastcgi_param SCRIPT_FILENAME $realpath_root$fastcgi_script_name;
        fastcgi_param DOCUMENT_ROOT $realpath_root;
    }}

    location ~ /\\.ht {{
        deny all;
    }}

    location ~ /\\.(git|svn|hg) {{
        deny all;
    }}

    add_header Cache-Control "no-store";
}}
"""

SAMPLE_FILES = {
    "test1/index.html": "This is test1\n",
    "test2/index.html": "This is test2\n",
    "index.php": "<?php phpinfo(); ?>\n",
}


def make_context(assume_yes: bool = False) -> RunContext:
    return context_for(
        "nginx",
        assume_yes,
        nginx_conf=NGINX_CONF,
        available_dir=NGINX_AVAILABLE_DIR,
        enabled_dir=NGINX_ENABLED_DIR,
        http_root=HTTP_ROOT,
        www_dir=WWW_DIR,
    )


def render_main_config(enabled_dir: Path) -> str:
    return MAIN_CONF_TEMPLATE.format(user=HTTP_USER, enabled_dir=str(enabled_dir))


def render_default_site(root_dir: Path, www_dir: Path) -> str:
    return DEFAULT_SITE_TEMPLATE.format(
        root_dir=str(root_dir), www_dir=str(www_dir), php_fpm_sock=PHP_FPM_SOCKET
    )


def www_link(ctx: RunContext) -> Path:
    return ctx.paths["http_root"] / "Www"


def traversal_dirs(target: Path) -> list[Path]:
    """Directories below /home that nginx must traverse to reach ``target``."""
    target = Path(target)
    home_root = Path("/home")
    if not target.is_relative_to(home_root):
        return [target]
    chain = [target] + [p for p in target.parents if p.is_relative_to(home_root)]
    return sorted(chain, key=lambda p: len(p.parts))


def test_config() -> None:
    run_cmd(["sudo", "nginx", "-t"])


def reload_nginx() -> None:
    reload_service(SERVICE)


# ─── Workflow steps ──────────────────────────────────────────────────────
def _install(ctx: RunContext) -> None:
    install_packages([SERVICE])


def _create_dirs(ctx: RunContext) -> None:
    dirs = [ctx.paths["available_dir"], ctx.paths["enabled_dir"], ctx.paths["http_root"]]
    created = [d for d in dirs if not d.exists()]
    if created:
        run_cmd(["sudo", "mkdir", "-p"] + [str(d) for d in created])
    for d in created:
        ctx.register_rollback(f"mkdir {d}", lambda d=d: remove_path(d))


def _link_www(ctx: RunContext) -> None:
    www = ctx.paths["www_dir"]
    www.mkdir(parents=True, exist_ok=True)
    run_cmd(["sudo", "chmod", "o+rx"] + [str(p) for p in traversal_dirs(www)])
    link = www_link(ctx)
    if link.is_symlink():
        log(f"{link} already linked to {link.resolve()}")
        return
    run_cmd(["sudo", "ln", "-s", str(www), str(link)])
    ctx.register_rollback(f"link {link}", lambda: remove_path(link))


def _write_main_config(ctx: RunContext) -> None:
    change = write_file(ctx.paths["nginx_conf"], render_main_config(ctx.paths["enabled_dir"]))
    ctx.register_rollback("nginx.conf", change.revert)


def _write_default_site(ctx: RunContext) -> None:
    path = ctx.paths["available_dir"] / "default.conf"
    change = write_file(path, render_default_site(www_link(ctx), ctx.paths["www_dir"]))
    ctx.register_rollback("default site", change.revert)


def _enable_default_site(ctx: RunContext) -> None:
    source = ctx.paths["available_dir"] / "default.conf"
    link = ctx.paths["enabled_dir"] / "default.conf"
    existed = link.is_symlink() or link.exists()
    run_cmd(["sudo", "ln", "-sf", str(source), str(link)])
    if not existed:
        ctx.register_rollback("enable default site", lambda: remove_path(link))


def _sample_content(ctx: RunContext) -> None:
    www = ctx.paths["www_dir"]
    for rel, content in SAMPLE_FILES.items():
        path = www / rel
        if path.exists():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        log(f"PASS: Created sample {path}")


def _test_config(ctx: RunContext) -> None:
    test_config()


def _start_service(ctx: RunContext) -> None:
    if not ensure_service_running(SERVICE):
        reload_nginx()


def setup_steps() -> list[Step]:
    return [
        Step("install nginx", _install),
        Step("create nginx directories", _create_dirs),
        Step("link Www directory", _link_www),
        Step("write nginx.conf", _write_main_config),
        Step("write default site", _write_default_site),
        Step("enable default site", _enable_default_site),
        Step("create sample content", _sample_content, required=False),
        Step("test nginx config", _test_config),
        Step("start nginx", _start_service),
    ]


def print_summary(ctx: RunContext) -> None:
    print("\nModular Nginx setup (with directory listing) complete!")
    print(f"  Main config:      {ctx.paths['nginx_conf']}")
    print(f"  Sites available:  {ctx.paths['available_dir']}")
    print(f"  Sites enabled:    {ctx.paths['enabled_dir']}")
    print(f"  Root directory:   {www_link(ctx)} -> {ctx.paths['www_dir']}")
    print("  Test URL:         http://localhost/")
    print(f"  Log:              {ctx.log_file}\n")
