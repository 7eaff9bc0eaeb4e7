#!/usr/bin/env python3
"""
Error taxonomy for Anvil.

Every failure raised by the sync subsystem is an ``AnvilError`` carrying an
explicit ``kind`` plus a chain of context frames, so callers branch on
structured fields instead of parsing messages.
"""

from enum import Enum
from typing import List, Optional


class ErrorKind(Enum):
    """Broad categories of failure."""
    REPOSITORY_ACCESS = "repository_access"
    SECURITY_BLOCKED = "security_blocked"
    NO_CHANGES = "no_changes"
    CANCELLED = "cancelled"
    FILE_SYSTEM = "file_system"
    TIMEOUT = "timeout"
    COMMAND_START = "command_start"
    CONFIGURATION = "configuration"


class ErrorCode(Enum):
    """Specific conditions callers may want to react to."""
    BRANCH_NOT_FOUND = "branch_not_found"
    BRANCH_EXISTS = "branch_exists"
    AUTHENTICATION_FAILED = "authentication_failed"
    PUBLIC_REPOSITORY = "public_repository"


class AnvilError(Exception):
    """Base exception for all Anvil errors."""

    kind = ErrorKind.REPOSITORY_ACCESS

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.code = code
        self.stderr = stderr.strip() if stderr else None
        self.context: List[str] = []

    def with_context(self, frame: str) -> 'AnvilError':
        """Prepend a context frame and return the same error for re-raising."""
        self.context.insert(0, frame)
        return self

    def __str__(self) -> str:
        text = self.message
        if self.context:
            text = ": ".join(self.context + [text])
        if self.stderr:
            text = f"{text}\n{self.stderr}"
        return text


class RepositoryAccessError(AnvilError):
    """Git network, authentication or working-copy failure."""
    kind = ErrorKind.REPOSITORY_ACCESS


class BranchConfigError(RepositoryAccessError):
    """The configured tracked branch does not exist on the remote."""

    def __init__(self, branch: str, local_path: str, operation: Optional[str] = None,
                 stderr: Optional[str] = None):
        super().__init__(
            f"Branch Configuration Error: branch '{branch}' was not found in the repository",
            operation=operation,
            code=ErrorCode.BRANCH_NOT_FOUND,
            stderr=stderr,
        )
        self.branch = branch
        self.local_path = local_path

    @property
    def remediation(self) -> List[str]:
        return [
            "Update 'github.branch' in your settings file to an existing branch",
            f"Or delete the local repository at {self.local_path} "
            "(it will be re-cloned with the correct branch)",
        ]


class SecurityBlocked(AnvilError):
    """The privacy gate refused to let data leave the machine."""
    kind = ErrorKind.SECURITY_BLOCKED


class NoChanges(AnvilError):
    """Nothing to commit. A control-flow signal, not a failure."""
    kind = ErrorKind.NO_CHANGES


class CancelledByUser(AnvilError):
    """The operator declined to continue."""
    kind = ErrorKind.CANCELLED


class FileSystemError(AnvilError):
    """Local I/O failure while comparing or staging files."""
    kind = ErrorKind.FILE_SYSTEM


class CommandTimeout(AnvilError):
    """An external command exceeded its timeout and was killed."""
    kind = ErrorKind.TIMEOUT


class CommandStartError(AnvilError):
    """An external command could not be started."""
    kind = ErrorKind.COMMAND_START


class ConfigurationError(AnvilError):
    """Settings are missing or invalid."""
    kind = ErrorKind.CONFIGURATION
