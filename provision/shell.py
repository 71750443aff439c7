"""Clean reinstall of Zsh + Oh My Zsh with plugins and Powerlevel10k."""

from __future__ import annotations

import getpass
import shutil
from pathlib import Path

from config import ETC_SHELLS, OHMYZSH_INSTALLER, P10K_REPO, ZSH_PLUGIN_REPOS
from provision.confwriter import write_file
from provision.errors import MissingDependencyError
from provision.orchestrator import RunContext, Step, context_for
from provision.system import install_packages
from provision.utils import log, remove_path, run_cmd

PACKAGES = ("zsh", "git", "curl", "wget")
OLD_FILES = (".oh-my-zsh", ".zshrc", ".zshrc.pre-oh-my-zsh", ".p10k.zsh")

ZSHRC = """\
export ZSH="$HOME/.oh-my-zsh"
ZSH_THEME="powerlevel10k/powerlevel10k"

plugins=(
  git
  z
  sudo
  colored-man-pages
  zsh-autosuggestions
  zsh-syntax-highlighting
)

source $ZSH/oh-my-zsh.sh

# Aliases
alias ll='ls -lh'
alias la='ls -lha'
alias gs='git status'
alias gc='git commit -m'

export PATH="$HOME/.local/bin:$PATH"
"""


def make_context(assume_yes: bool = False, home: Path | None = None) -> RunContext:
    home = home or Path.home()
    return context_for(
        "shell",
        assume_yes,
        home=home,
        zsh_custom=home / ".oh-my-zsh" / "custom",
        etc_shells=ETC_SHELLS,
    )


def old_install_files(home: Path) -> list[Path]:
    found = [home / name for name in OLD_FILES if (home / name).exists()]
    found += sorted(home.glob(".zcompdump*"))
    return found


def _remove_old(ctx: RunContext) -> None:
    for path in old_install_files(ctx.paths["home"]):
        remove_path(path)
        log(f"PASS: Removed {path}")


def _install(ctx: RunContext) -> None:
    install_packages(PACKAGES)


def _install_ohmyzsh(ctx: RunContext) -> None:
    script = run_cmd(["curl", "-fsSL", OHMYZSH_INSTALLER])
    run_cmd(
        ["sh", "-s"],
        env={"RUNZSH": "no", "CHSH": "no", "KEEP_ZSHRC": "yes"},
        input_text=script,
    )
    ctx.register_rollback("oh-my-zsh", lambda: remove_path(ctx.paths["home"] / ".oh-my-zsh"))


def _write_zshrc(ctx: RunContext) -> None:
    change = write_file(ctx.paths["home"] / ".zshrc", ZSHRC)
    ctx.register_rollback(".zshrc", change.revert)


def _clone(url: str, dest: Path, shallow: bool = False) -> None:
    if dest.exists():
        log(f"{dest} already present")
        return
    argv = ["git", "clone"]
    if shallow:
        argv.append("--depth=1")
    run_cmd(argv + [url, str(dest)])


def _plugins(ctx: RunContext) -> None:
    for name, url in ZSH_PLUGIN_REPOS.items():
        _clone(url, ctx.paths["zsh_custom"] / "plugins" / name)


def _theme(ctx: RunContext) -> None:
    _clone(P10K_REPO, ctx.paths["zsh_custom"] / "themes" / "powerlevel10k", shallow=True)


def zsh_path() -> str:
    candidate = Path("/usr/bin/zsh")
    if candidate.exists():
        return str(candidate)
    found = shutil.which("zsh")
    if not found:
        raise MissingDependencyError("zsh", "zsh")
    return found


def _register_shell(ctx: RunContext) -> None:
    path = zsh_path()
    shells = ctx.paths["etc_shells"]
    listed = shells.read_text(encoding="utf-8").splitlines() if shells.exists() else []
    if path in listed:
        log(f"{path} already in {shells}")
        return
    run_cmd(["sudo", "tee", "-a", str(shells)], input_text=path + "\n")


def _chsh(ctx: RunContext) -> None:
    run_cmd(["chsh", "-s", zsh_path(), getpass.getuser()])


def setup_steps() -> list[Step]:
    return [
        Step(
            "remove previous zsh setup",
            _remove_old,
            destructive=True,
            prompt="Delete ~/.oh-my-zsh, ~/.zshrc and related files?",
        ),
        Step("install zsh packages", _install),
        Step("install oh-my-zsh", _install_ohmyzsh),
        Step("write .zshrc", _write_zshrc),
        Step("install zsh plugins", _plugins, required=False),
        Step("install powerlevel10k", _theme, required=False),
        Step("register zsh in /etc/shells", _register_shell),
        Step("set default shell", _chsh),
    ]


def print_summary(ctx: RunContext) -> None:
    print("\nClean reinstall complete!")
    print("  Restart your terminal or run: exec zsh")
    print("  Configure Powerlevel10k when prompted for your prompt style.")
    print(f"  Log: {ctx.log_file}\n")
