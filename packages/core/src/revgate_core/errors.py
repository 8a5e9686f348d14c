"""Exception hierarchy shared by every revgate package.

Each error carries the process exit code the CLI should return when the
error reaches the top level. A normal ``block`` decision is not an error and
never passes through here.
"""

from __future__ import annotations

EXIT_PASS = 0
EXIT_BLOCK = 1
EXIT_ERROR = 2
EXIT_QUEUED = 3


class RevgateError(Exception):
    """Base class. Unhandled or protocol-level failures map to exit code 2."""

    exit_code: int = EXIT_ERROR


class ConfigError(RevgateError):
    pass


class GitError(RevgateError):
    """A git subprocess failed or produced output we could not interpret."""

    def __init__(self, args: list[str], stderr: str = "", returncode: int | None = None):
        self.git_args = list(args)
        self.stderr = stderr.strip()
        self.returncode = returncode
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"git {' '.join(self.git_args)} failed{detail}")


class SecretsDetectedError(RevgateError):
    """Pre-flight rejection: potential secrets found and no override given.

    Uses exit code 1: the user can fix the change or explicitly override.
    """

    exit_code = EXIT_BLOCK

    def __init__(self, matches):
        self.matches = list(matches)
        report = "\n".join(f"- {m.pattern} at line {m.line}: {m.excerpt}" for m in self.matches)
        super().__init__(f"Potential secrets detected:\n{report}")


class ProviderError(RevgateError):
    """Transport or provider failure after all retries were exhausted."""


class DecisionValidationError(RevgateError):
    """The model's structured decision was missing, malformed, or invalid."""


class JobStoreError(RevgateError):
    """Job store I/O or protocol failure. Backends live in revgate_store."""


class JobNotFoundError(JobStoreError):
    pass


class JobCorruptError(JobStoreError):
    pass


class JobExistsError(JobStoreError):
    pass


class InvalidTransitionError(JobStoreError):
    pass


class ReviewNotFoundError(JobStoreError):
    pass
