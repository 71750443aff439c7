"""Key/value and whole-file config edits with revertible changes.

``ConfigFile`` keeps a line model of an INI-ish file (php.ini, php-fpm pool
files) and upserts ``key = value`` directives instead of running text
substitutions over the file. ``save`` and ``write_file`` return a ``Change``
that knows the previous content, which is what rollback handlers use.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from provision.utils import log, remove_path, write_text_atomic

UPDATED = "updated"
ENABLED = "enabled"
ADDED = "added"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Change:
    path: Path
    before: str | None
    after: str

    @property
    def changed(self) -> bool:
        return self.before != self.after

    def revert(self) -> None:
        if not self.changed:
            return
        if self.before is None:
            remove_path(self.path)
            log(f"PASS: Removed {self.path}")
            return
        write_text_atomic(self.path, self.before)
        log(f"PASS: Restored previous {self.path}")


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def write_file(path: Path, text: str, mode: int | None = None) -> Change:
    path = Path(path)
    before = _read(path)
    if before != text:
        write_text_atomic(path, text, mode)
        log(f"PASS: Wrote {path}")
    return Change(path, before, text)


class ConfigFile:
    def __init__(self, path: Path, text: str | None = None, sep: str = " = ", comment: str = ";"):
        self.path = Path(path)
        if text is None:
            text = _read(self.path)
            if text is None:
                raise FileNotFoundError(self.path)
        self.original = text
        self.sep = sep
        self.comment = comment
        self.lines = text.splitlines()

    def _active_re(self, key: str) -> re.Pattern:
        return re.compile(rf"^\s*{re.escape(key)}\s*=")

    def _commented_re(self, key: str) -> re.Pattern:
        return re.compile(rf"^\s*{re.escape(self.comment)}\s*{re.escape(key)}\s*=")

    def _find(self, pattern: re.Pattern) -> int:
        for i, line in enumerate(self.lines):
            if pattern.match(line):
                return i
        return -1

    def get(self, key: str) -> str | None:
        idx = self._find(self._active_re(key))
        if idx == -1:
            return None
        return self.lines[idx].split("=", 1)[1].strip()

    def _replace(self, key: str, line: str) -> str | None:
        idx = self._find(self._active_re(key))
        if idx != -1:
            if self.lines[idx] == line:
                return UNCHANGED
            self.lines[idx] = line
            return UPDATED
        idx = self._find(self._commented_re(key))
        if idx != -1:
            self.lines[idx] = line
            return ENABLED
        return None

    def set(self, key: str, value: str, section: str | None = None, sep: str | None = None) -> str:
        line = f"{key}{self.sep if sep is None else sep}{value}"
        action = self._replace(key, line)
        if action is not None:
            return action
        self._append(line, section)
        return ADDED

    def update_existing(self, key: str, value: str, sep: str | None = None) -> str | None:
        """Like set() but never appends; None when the key is absent."""
        line = f"{key}{self.sep if sep is None else sep}{value}"
        return self._replace(key, line)

    def enable(self, directive: str, name: str) -> str:
        """Enable ``directive=name`` (extension=gd, zend_extension=opcache)."""
        line = f"{directive}={name}"
        active = re.compile(rf"^\s*{re.escape(directive)}\s*=\s*{re.escape(name)}\s*$")
        commented = re.compile(
            rf"^\s*{re.escape(self.comment)}\s*{re.escape(directive)}\s*=\s*{re.escape(name)}\s*$"
        )
        if self._find(active) != -1:
            return UNCHANGED
        idx = self._find(commented)
        if idx != -1:
            self.lines[idx] = line
            return ENABLED
        self.lines.append(line)
        return ADDED

    def has_section(self, name: str) -> bool:
        return self._find(re.compile(rf"^\s*\[{re.escape(name)}\]\s*$")) != -1

    def ensure_section(self, name: str) -> bool:
        if self.has_section(name):
            return False
        if self.lines and self.lines[-1].strip():
            self.lines.append("")
        self.lines.append(f"[{name}]")
        return True

    def _append(self, line: str, section: str | None) -> None:
        if section is None or not self.has_section(section):
            self.lines.append(line)
            return
        start = self._find(re.compile(rf"^\s*\[{re.escape(section)}\]\s*$"))
        end = len(self.lines)
        for i in range(start + 1, len(self.lines)):
            if re.match(r"^\s*\[[^\]]+\]\s*$", self.lines[i]):
                end = i
                break
        # keep trailing blank lines of the section after the new entry
        while end - 1 > start and not self.lines[end - 1].strip():
            end -= 1
        self.lines.insert(end, line)

    def render(self) -> str:
        text = "\n".join(self.lines)
        if self.lines and (self.original.endswith("\n") or not self.original):
            text += "\n"
        return text

    @property
    def dirty(self) -> bool:
        return self.render() != self.original

    def save(self) -> Change:
        after = self.render()
        change = Change(self.path, self.original, after)
        if change.changed:
            write_text_atomic(self.path, after)
            log(f"PASS: Updated {self.path}")
        self.original = after
        return change
