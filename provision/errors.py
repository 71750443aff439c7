"""Error taxonomy for provisioning runs."""

from __future__ import annotations

from pathlib import Path


class ProvisionError(Exception):
    """Base class for every failure raised by a provisioning step."""


class MissingDependencyError(ProvisionError):
    def __init__(self, tool: str, package: str | None = None):
        self.tool = tool
        self.package = package
        hint = f" (package: {package})" if package else ""
        super().__init__(f"required tool not found: {tool}{hint}")


class AuthenticationError(ProvisionError):
    pass


class CommandError(ProvisionError):
    """A wrapped external command exited non-zero."""

    def __init__(self, argv: list[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.argv = argv
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(self._describe())

    def _describe(self) -> str:
        msg = f"{' '.join(self.argv)} exit={self.returncode}"
        tail = (self.stderr or self.stdout).strip().splitlines()[-3:]
        if tail:
            msg += ": " + " | ".join(tail)
        return msg


class StateConflictError(ProvisionError):
    """The target already exists and may not be overwritten."""


class ConfirmationDeclined(StateConflictError):
    pass


class RunAborted(ProvisionError):
    """The operator interrupted the run."""


class RunFailed(ProvisionError):
    def __init__(self, step: str, cause: BaseException, log_file: Path | None = None):
        self.step = step
        self.cause = cause
        self.log_file = log_file
        msg = f"step '{step}' failed: {cause}"
        if log_file:
            msg += f" (see {log_file})"
        super().__init__(msg)
