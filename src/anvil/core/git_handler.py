#!/usr/bin/env python3
"""
Working-copy management for Anvil.

GitHandler owns the single persistent clone of the configuration repository.
Every mutation of that clone (checkout, staging, commits, cleanup) goes
through this class so that recovery has one authoritative actor. Commands run
through the command runner with the clone as their working directory; GitPython
is used for read-only inspection.
"""

import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from git import Repo, InvalidGitRepositoryError, NoSuchPathError

from ..errors import (
    ErrorCode,
    FileSystemError,
    NoChanges,
    RepositoryAccessError,
)
from ..utils.logger import get_logger
from ..utils.path import list_files, mirror_merge
from ..utils.runner import CommandResult, CommandRunner, mask_credentials
from .models import RepositoryHandle

# stderr fragments git prints when a requested branch does not exist
BRANCH_NOT_FOUND_SIGNATURES = (
    'not found in upstream origin',
    "couldn't find remote ref",
    'did not match any file(s) known to git',
    'invalid reference',
)


def is_branch_not_found(output: str) -> bool:
    """Whether git's diagnostic says the requested branch does not exist."""
    return any(signature in output for signature in BRANCH_NOT_FOUND_SIGNATURES)


class GitHandler:
    """Handles the working copy of one remote configuration repository."""

    def __init__(self, handle: RepositoryHandle, runner: Optional[CommandRunner] = None):
        """
        Initialize Git handler.

        Args:
            handle: Repository the working copy belongs to
            runner: Command runner (a default one carrying the handle's
                    git environment is created when omitted)
        """
        self.logger = get_logger(f"{__name__}.GitHandler")
        self.handle = handle
        self.repo_path = Path(handle.local_clone_path)
        self.runner = runner or CommandRunner(env=handle.git_environment())

    def _git(self, args: Sequence[str], operation: str, cwd: Optional[Path] = None,
             env: Optional[Dict[str, str]] = None, check: bool = True) -> CommandResult:
        """Run a git command inside the working copy."""
        result = self.runner.run('git', list(args), cwd=cwd or self.repo_path, env=env)
        if check and not result.succeeded:
            raise self._command_error(operation, result)
        return result

    def _command_error(self, operation: str, result: CommandResult) -> RepositoryAccessError:
        output = mask_credentials(result.output)
        code = ErrorCode.BRANCH_NOT_FOUND if is_branch_not_found(output) else None
        return RepositoryAccessError(
            f"git {operation} failed (exit {result.exit_code})",
            operation=operation,
            code=code,
            stderr=output,
        )

    @property
    def is_cloned(self) -> bool:
        """Whether a valid, non-bare repository exists at the clone path."""
        try:
            with Repo(self.repo_path) as repo:
                return not repo.bare
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    @property
    def current_branch(self) -> Optional[str]:
        """Name of the checked-out branch, None when detached or not cloned."""
        try:
            with Repo(self.repo_path) as repo:
                return repo.active_branch.name
        except (InvalidGitRepositoryError, NoSuchPathError, TypeError):
            return None

    @property
    def is_dirty(self) -> bool:
        """Whether there are staged, modified or untracked files."""
        try:
            with Repo(self.repo_path) as repo:
                return repo.is_dirty(untracked_files=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def branch_exists(self, name: str) -> bool:
        try:
            with Repo(self.repo_path) as repo:
                return name in [head.name for head in repo.heads]
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    def local_branches(self) -> List[str]:
        try:
            with Repo(self.repo_path) as repo:
                return sorted(head.name for head in repo.heads)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return []

    def status(self) -> Dict[str, object]:
        """Summary of the working copy for display."""
        if not self.is_cloned:
            return {'path': str(self.repo_path), 'cloned': False, 'branch': None,
                    'dirty': False, 'untracked': []}

        with Repo(self.repo_path) as repo:
            untracked = list(repo.untracked_files)
            dirty = repo.is_dirty(untracked_files=True)
        return {
            'path': str(self.repo_path),
            'cloned': True,
            'branch': self.current_branch,
            'dirty': dirty,
            'untracked': untracked,
        }

    def ensure_cloned(self) -> bool:
        """
        Clone the repository at the tracked branch unless a valid clone exists.

        Returns:
            True if a clone was performed, False if the existing one was reused
        """
        if self.is_cloned:
            self.logger.debug(f"Using existing working copy at {self.repo_path}")
            self._scrub_origin()
            return False

        if self.repo_path.exists():
            if not self.repo_path.is_dir() or any(self.repo_path.iterdir()):
                raise FileSystemError(
                    f"{self.repo_path} exists but is not a git repository. "
                    "Remove it so the configuration repository can be cloned there.",
                    operation='clone',
                )
        else:
            self.repo_path.parent.mkdir(parents=True, exist_ok=True)

        self._git(
            ['clone', '--branch', self.handle.tracked_branch,
             self.handle.clone_url, str(self.repo_path)],
            operation='clone',
            cwd=self.repo_path.parent,
        )
        self._scrub_origin()
        self.logger.info(f"Cloned {self.handle.display_url} into {self.repo_path}")
        return True

    def _scrub_origin(self):
        """Keep the access token out of ``.git/config``."""
        if self.handle.carries_token:
            self._git(['remote', 'set-url', 'origin', self.handle.remote_url],
                      operation='remote-set-url')

    @property
    def _remote(self) -> str:
        # origin is token-free, so authenticated commands name the URL directly
        return self.handle.clone_url if self.handle.carries_token else 'origin'

    def checkout_tracked(self):
        """Check out the tracked branch."""
        self._git(['checkout', self.handle.tracked_branch], operation='checkout')

    def pull_latest(self):
        """Fast-forward the tracked branch from origin. Never merges."""
        self._git(['pull', '--ff-only', self._remote, self.handle.tracked_branch], operation='pull')
        self.logger.debug(f"Pulled origin/{self.handle.tracked_branch}")

    def _discard_local_changes(self):
        self._git(['reset', '--hard', '--quiet', 'HEAD'], operation='reset')
        # -ff also removes nested repositories left by older copies
        self._git(['clean', '-ffd'], operation='clean')

    def ensure_clean(self):
        """Drop staged changes, edits and untracked files left by an earlier run."""
        self._discard_local_changes()

    def create_and_checkout_branch(self, name: str):
        """Create ``name`` from HEAD and switch to it."""
        if self.branch_exists(name):
            raise RepositoryAccessError(
                f"Branch '{name}' already exists in {self.repo_path}",
                operation='checkout-new-branch',
                code=ErrorCode.BRANCH_EXISTS,
            )
        self._git(['checkout', '-b', name], operation='checkout-new-branch')
        self.logger.info(f"Created and switched to branch: {name}")

    def mirror_source(self, source: Path, repo_relative_path: str) -> Path:
        """
        Copy a local file or directory into the working copy.

        Existing files are overwritten; files only present in the working copy
        are kept.

        Returns:
            Destination path inside the working copy
        """
        source = Path(source)
        destination = self.repo_path / repo_relative_path
        if not source.exists():
            raise FileSystemError(f"Local config path does not exist: {source}", operation='stage')
        try:
            mirror_merge(source, destination)
        except OSError as e:
            raise FileSystemError(
                f"Failed to copy {source} into {destination}: {e}", operation='stage'
            ) from e
        return destination

    def stage_all(self):
        self._git(['add', '-A'], operation='add')

    def has_staged_changes(self) -> bool:
        result = self._git(['diff', '--cached', '--quiet'], operation='diff-check', check=False)
        if result.exit_code not in (0, 1):
            raise self._command_error('diff-check', result)
        return result.exit_code == 1

    def commit(self, message: str):
        """Commit the index. Raises NoChanges instead of creating an empty commit."""
        if not self.has_staged_changes():
            raise NoChanges("No changes to commit", operation='commit')
        self._git(['commit', '-m', message], operation='commit',
                  env=self.handle.committer_environment())
        self.logger.info(f"Committed changes: {message}")

    def staged_diff(self, repo_relative_path: str, *options: str) -> str:
        """Output of ``git diff --cached`` for one path."""
        result = self._git(['diff', '--cached', *options, '--', repo_relative_path],
                           operation='diff')
        return result.stdout

    def push_current_branch(self, name: str):
        """Push ``name`` to origin, setting it as upstream when origin is usable directly."""
        if self.handle.carries_token:
            args = ['push', self._remote, f"{name}:{name}"]
        else:
            args = ['push', '--set-upstream', 'origin', name]
        self._git(args, operation='push')
        self.logger.info(f"Pushed branch '{name}' to origin")

    def cleanup_staged_changes(self):
        """
        Return the working copy to a clean tracked branch.

        Resets the index, discards edits, deletes untracked files and checks
        out the tracked branch. Safe to call when nothing was staged.
        """
        if not self.is_cloned:
            return
        self._discard_local_changes()
        if self.current_branch != self.handle.tracked_branch:
            self.checkout_tracked()
        self.logger.debug("Working copy reset to tracked branch")

    def list_files(self, repo_relative_path: str) -> List[str]:
        """Repo-relative paths of every file under ``repo_relative_path``."""
        return list_files(self.repo_path / repo_relative_path, self.repo_path)

    def export(self, repo_relative_path: str, destination: Path) -> List[str]:
        """
        Replace ``destination`` with a copy of a path from the working copy.

        Returns:
            Paths of the copied files, relative to ``destination``

        Raises:
            FileSystemError: the path is not in the repository or cannot be copied
        """
        source = self.repo_path / repo_relative_path
        destination = Path(destination)
        if not repo_relative_path.strip('/') or not source.exists():
            raise FileSystemError(
                f"Directory '{repo_relative_path}' does not exist in repository "
                f"{self.handle.display_url}",
                operation='pull',
            )
        try:
            if destination.is_dir():
                shutil.rmtree(destination)
            elif destination.exists():
                destination.unlink()
            mirror_merge(source, destination)
        except OSError as e:
            raise FileSystemError(
                f"Failed to copy {source} into {destination}: {e}", operation='pull'
            ) from e
        return list_files(destination, destination.parent if destination.is_file() else destination)
