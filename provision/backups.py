"""Timestamped backups with a fixed retention count."""

from __future__ import annotations

import tarfile
from pathlib import Path

from config import BACKUP_KEEP
from provision.utils import copy_file, log, remove_path, stamp

SUFFIX = ".backup-"


def backup_name(src: Path, when: str | None = None) -> Path:
    return src.with_name(f"{src.name}{SUFFIX}{when or stamp()}")


def list_backups(src: Path) -> list[Path]:
    """Backups of ``src`` newest first (timestamp suffix sorts chronologically)."""
    src = Path(src)
    if not src.parent.exists():
        return []
    found = [p for p in src.parent.glob(f"{src.name}{SUFFIX}*") if p.is_file()]
    return sorted(found, key=lambda p: p.name, reverse=True)


def prune(paths: list[Path], keep: int = BACKUP_KEEP) -> list[Path]:
    """Delete everything after the newest ``keep`` entries of ``paths`` (newest first)."""
    removed = []
    for old in paths[keep:]:
        remove_path(old)
        removed.append(old)
    if removed:
        log(f"Cleaned {len(removed)} old backup(s) (keeping last {keep})")
    return removed


def backup_file(src: Path, keep: int = BACKUP_KEEP, when: str | None = None) -> Path:
    src = Path(src)
    if not src.is_file():
        raise FileNotFoundError(f"{src} not found")
    dest = backup_name(src, when)
    copy_file(src, dest)
    log(f"PASS: Backup created: {dest}")
    prune(list_backups(src), keep)
    return dest


def restore_file(backup: Path, target: Path) -> None:
    copy_file(Path(backup), Path(target))
    log(f"PASS: Restored {target} from {backup.name}")


# ─── Site archives ────────────────────────────────────────────────────────
def site_backup_dir(root: Path, site: str) -> Path:
    return Path(root) / site


def list_site_backups(root: Path, site: str) -> list[Path]:
    """Site archives newest first."""
    folder = site_backup_dir(root, site)
    if not folder.exists():
        return []
    return sorted(folder.glob(f"{site}-*.tar.gz"), key=lambda p: p.name, reverse=True)


def archive_dump(archive: Path) -> Path:
    """SQL dump stored next to a site archive."""
    return archive.with_name(archive.name[: -len(".tar.gz")] + ".sql")


def prune_site_backups(root: Path, site: str, keep: int = BACKUP_KEEP) -> list[Path]:
    removed = prune(list_site_backups(root, site), keep)
    for archive in removed:
        dump = archive_dump(archive)
        if dump.exists():
            remove_path(dump)
    return removed


def archive_dir(source: Path, archive: Path) -> Path:
    archive.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(str(source), arcname=source.name)
    log(f"PASS: Archived {source} -> {archive}")
    return archive


def extract_archive(archive: Path, dest_parent: Path) -> Path:
    """Extract an archive made by archive_dir into ``dest_parent``; returns the top dir."""
    with tarfile.open(archive, "r:gz") as tar:
        names = tar.getnames()
        top = names[0].split("/", 1)[0] if names else ""
        tar.extractall(dest_parent, filter="data")
    log(f"PASS: Extracted {archive} into {dest_parent}")
    return Path(dest_parent) / top
