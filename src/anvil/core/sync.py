#!/usr/bin/env python3
"""
Synchronization manager for Anvil.

Pushes one configuration target to the remote repository: privacy gate,
working-copy readiness, change detection, preview, confirmation, then a
fresh timestamped branch, commit and push. Any failure or cancellation after
the working copy has been cleaned returns it to the tracked branch.

Pulls copy a directory of the up-to-date working copy out for review; they
never touch the operator's live configuration.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from ..errors import (
    AnvilError,
    BranchConfigError,
    CancelledByUser,
    ErrorCode,
    NoChanges,
)
from ..utils.logger import get_logger
from .changes import ChangeDetector
from .diff import DiffSummarizer
from .git_handler import GitHandler
from .models import ChangeReport, DiffPreview, PullRecord, PushRecord, RepositoryHandle, SyncTarget
from .privacy import PrivacyGate

BRANCH_PREFIX = 'config-push'
COMMIT_MESSAGE_FORMAT = 'anvil[push]: {target}'

ConfirmCallback = Callable[[SyncTarget, ChangeReport, Optional[DiffPreview]], bool]
ProgressCallback = Callable[[str], None]


class SyncStatus(Enum):
    """Outcome of a push attempt."""
    PUSHED = "pushed"
    NO_CHANGES = "no_changes"
    CANCELLED = "cancelled"


@dataclass
class SyncResult:
    """Result of a push attempt that did not raise."""

    status: SyncStatus
    target: SyncTarget
    message: str = ''
    record: Optional[PushRecord] = None
    report: Optional[ChangeReport] = None
    preview: Optional[DiffPreview] = None


def timestamped_branch_name(prefix: str, now: Optional[datetime] = None) -> str:
    """``{prefix}-{DDMMYYYY}-{HHMM}`` in local time."""
    now = now or datetime.now()
    return f"{prefix}-{now:%d%m%Y}-{now:%H%M}"


class SyncManager:
    """Main synchronization manager class."""

    def __init__(
        self,
        handle: RepositoryHandle,
        confirm: Optional[ConfirmCallback] = None,
        progress: Optional[ProgressCallback] = None,
        git_handler: Optional[GitHandler] = None,
        privacy_gate: Optional[PrivacyGate] = None,
        detector: Optional[ChangeDetector] = None,
        summarizer: Optional[DiffSummarizer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize sync manager.

        Args:
            handle: Fully resolved repository access
            confirm: Asked before anything is committed; None auto-confirms
            progress: Receives short stage descriptions
            git_handler, privacy_gate, detector, summarizer: Collaborators,
                built from ``handle`` when omitted
            clock: Source of the branch timestamp
        """
        self.logger = get_logger(f"{__name__}.SyncManager")
        self.handle = handle
        self.confirm = confirm
        self.progress = progress
        self.git_handler = git_handler or GitHandler(handle)
        self.privacy_gate = privacy_gate or PrivacyGate()
        self.detector = detector or ChangeDetector()
        self.summarizer = summarizer or DiffSummarizer(self.git_handler)
        self.clock = clock or datetime.now

    def _notify(self, message: str):
        self.logger.debug(message)
        if self.progress:
            self.progress(message)

    def _cleanup(self):
        """Best-effort return to the tracked branch; never masks the caller's error."""
        try:
            self.git_handler.cleanup_staged_changes()
        except AnvilError as e:
            self.logger.warning(f"Failed to cleanup staged changes: {e}")

    def prepare_repository(self):
        """Clone if needed, check out and fast-forward the tracked branch, clean it."""
        steps = (
            ('clone', self.git_handler.ensure_cloned),
            ('checkout', self.git_handler.checkout_tracked),
            ('pull', self.git_handler.pull_latest),
            ('clean', self.git_handler.ensure_clean),
        )
        for name, step in steps:
            try:
                step()
            except AnvilError as e:
                if e.code == ErrorCode.BRANCH_NOT_FOUND:
                    raise BranchConfigError(
                        self.handle.tracked_branch,
                        str(self.handle.local_clone_path),
                        operation=name,
                        stderr=e.stderr,
                    ) from e
                raise e.with_context(f"failed to prepare repository ({name})")

    def detect_changes(self, target: SyncTarget) -> ChangeReport:
        repo_target = self.git_handler.repo_path / target.repo_relative_path
        return self.detector.detect(target.local_source_path, repo_target)

    def push_target(self, target: SyncTarget) -> SyncResult:
        """
        Push one target to a new branch on the remote.

        Returns:
            SyncResult with status PUSHED, NO_CHANGES or CANCELLED

        Raises:
            SecurityBlocked: the repository is public or unverifiable
            BranchConfigError: the tracked branch does not exist
            RepositoryAccessError, FileSystemError, CommandTimeout: other failures
        """
        self._notify("Verifying repository privacy...")
        self.privacy_gate.verify_private(self.handle)

        self._notify("Preparing working copy...")
        self.prepare_repository()

        self._notify("Analyzing changes...")
        report = self.detect_changes(target)
        if not report.has_changes:
            return SyncResult(
                SyncStatus.NO_CHANGES, target, report=report,
                message=f"Local {target.target_name} configs match the remote repository",
            )

        preview = self.summarizer.summarize(target, report)

        if not self._confirmed(target, report, preview):
            self._cleanup()
            return SyncResult(
                SyncStatus.CANCELLED, target, report=report, preview=preview,
                message="Push cancelled by user",
            )

        try:
            record = self._perform_push(target)
        except NoChanges:
            self._cleanup()
            return SyncResult(
                SyncStatus.NO_CHANGES, target, report=report, preview=preview,
                message="Nothing to commit after staging",
            )
        except (AnvilError, KeyboardInterrupt):
            self._cleanup()
            raise
        except OSError as e:
            self._cleanup()
            raise AnvilError(f"Push of {target.target_name} failed: {e}", operation='push') from e

        return SyncResult(
            SyncStatus.PUSHED, target, record=record, report=report, preview=preview,
            message=f"Pushed {target.target_name} to branch {record.branch_name}",
        )

    def pull_target(self, directory: str, destination_root: Union[str, Path]) -> PullRecord:
        """
        Copy ``directory`` of the tracked branch to ``destination_root/directory``.

        An existing copy at the destination is replaced.

        Raises:
            BranchConfigError: the tracked branch does not exist
            FileSystemError: the directory is not in the repository
            RepositoryAccessError, CommandTimeout: other failures
        """
        directory = directory.strip('/')

        self._notify("Preparing working copy...")
        self.prepare_repository()

        destination = Path(destination_root) / directory
        self._notify(f"Copying {directory} to {destination}...")
        files = self.git_handler.export(directory, destination)

        return PullRecord(
            directory=directory,
            destination=destination,
            files_copied=files,
            repository_url=self.handle.display_url,
        )

    def _confirmed(self, target: SyncTarget, report: ChangeReport,
                   preview: Optional[DiffPreview]) -> bool:
        if self.confirm is None:
            return True
        try:
            return bool(self.confirm(target, report, preview))
        except CancelledByUser:
            return False

    def _perform_push(self, target: SyncTarget) -> PushRecord:
        branch_name = timestamped_branch_name(BRANCH_PREFIX, self.clock())
        commit_message = COMMIT_MESSAGE_FORMAT.format(target=target.target_name)

        self._notify(f"Creating branch {branch_name}...")
        self.git_handler.create_and_checkout_branch(branch_name)

        self._notify(f"Copying {target.local_source_path} into the repository...")
        self.git_handler.mirror_source(target.local_source_path, target.repo_relative_path)

        self.git_handler.stage_all()
        self.git_handler.commit(commit_message)

        self._notify(f"Pushing branch {branch_name}...")
        self.git_handler.push_current_branch(branch_name)

        try:
            files = self.git_handler.list_files(target.repo_relative_path)
        except OSError as e:
            self.logger.debug(f"Could not list committed files: {e}")
            files = []
        if not files:
            files = [f"{target.target_name}/"]

        try:
            self.git_handler.checkout_tracked()
        except AnvilError as e:
            self.logger.warning(f"Pushed, but could not switch back to {self.handle.tracked_branch}: {e}")

        return PushRecord(
            branch_name=branch_name,
            commit_message=commit_message,
            files_committed=files,
            repository_url=self.handle.display_url,
        )
