#!/usr/bin/env python3
"""
Data model for configuration sync.

These objects are built fresh for every invocation and never persisted by
the sync subsystem.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse, urlunparse

DEFAULT_HOST = 'github.com'
SETTINGS_TARGET = 'anvil'
SETTINGS_DIR = '/anvil'
SETTINGS_FILE = 'settings.yaml'

_SHORTHAND_RE = re.compile(r'^[\w.-]+/[\w.-]+$')
_SCP_RE = re.compile(r'^(?:[\w.-]+@)?([\w.-]+):(?!//)(.+)$')


def _strip_git_suffix(path: str) -> str:
    path = path.strip('/')
    return path[:-4] if path.endswith('.git') else path


@dataclass
class RepositoryHandle:
    """One remote configuration repository and the operator's access to it."""

    remote_identifier: str
    tracked_branch: str
    local_clone_path: Path
    auth_token: Optional[str] = None
    ssh_key_path: Optional[Path] = None
    committer_name: Optional[str] = None
    committer_email: Optional[str] = None

    def __post_init__(self):
        self.local_clone_path = Path(self.local_clone_path)
        if self.ssh_key_path is not None:
            self.ssh_key_path = Path(self.ssh_key_path)

    @property
    def is_shorthand(self) -> bool:
        return bool(_SHORTHAND_RE.match(self.remote_identifier))

    @property
    def clone_url(self) -> str:
        """URL handed to git, carrying the token when one is configured."""
        if self.is_shorthand:
            if self.auth_token:
                return f"https://x-access-token:{self.auth_token}@{DEFAULT_HOST}/{self.remote_identifier}.git"
            if self.ssh_key_path:
                return f"git@{DEFAULT_HOST}:{self.remote_identifier}.git"
            return f"https://{DEFAULT_HOST}/{self.remote_identifier}.git"

        parsed = urlparse(self.remote_identifier)
        if self.auth_token and parsed.scheme == 'https' and not parsed.username:
            netloc = f"x-access-token:{self.auth_token}@{parsed.hostname}"
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
        return self.remote_identifier

    @property
    def remote_url(self) -> str:
        """Token-free URL recorded as ``origin`` in the working copy."""
        if self.is_shorthand:
            if self.ssh_key_path and not self.auth_token:
                return f"git@{DEFAULT_HOST}:{self.remote_identifier}.git"
            return f"https://{DEFAULT_HOST}/{self.remote_identifier}.git"
        return self.remote_identifier

    @property
    def carries_token(self) -> bool:
        return self.clone_url != self.remote_url

    @property
    def web_url(self) -> Optional[str]:
        """Public web page of the repository, or None if it has none."""
        if self.is_shorthand:
            return f"https://{DEFAULT_HOST}/{self.remote_identifier}"

        parsed = urlparse(self.remote_identifier)
        if parsed.scheme in ('http', 'https', 'ssh', 'git') and parsed.hostname:
            return f"https://{parsed.hostname}/{_strip_git_suffix(parsed.path)}"

        scp = _SCP_RE.match(self.remote_identifier)
        if scp and '://' not in self.remote_identifier:
            return f"https://{scp.group(1)}/{_strip_git_suffix(scp.group(2))}"
        return None

    @property
    def display_url(self) -> str:
        """Credential-free location for messages."""
        return self.web_url or self.remote_identifier

    def git_environment(self) -> Dict[str, str]:
        """Environment for git commands: SSH key selection when no token is set."""
        env = {'GIT_TERMINAL_PROMPT': '0'}
        if not self.auth_token and self.ssh_key_path:
            env['GIT_SSH_COMMAND'] = f"ssh -i {self.ssh_key_path} -o IdentitiesOnly=yes"
        return env

    def committer_environment(self) -> Dict[str, str]:
        env = {}
        if self.committer_name:
            env['GIT_AUTHOR_NAME'] = self.committer_name
            env['GIT_COMMITTER_NAME'] = self.committer_name
        if self.committer_email:
            env['GIT_AUTHOR_EMAIL'] = self.committer_email
            env['GIT_COMMITTER_EMAIL'] = self.committer_email
        return env


@dataclass
class SyncTarget:
    """The subject of one push: a local file or directory and its place in the repository."""

    target_name: str
    local_source_path: Path
    repo_relative_path: str

    def __post_init__(self):
        self.local_source_path = Path(self.local_source_path)
        self.repo_relative_path = self.repo_relative_path.strip('/')

    @classmethod
    def for_app(cls, name: str, source_path: Path) -> 'SyncTarget':
        """Directories map to ``name/``; single files to ``name/<file>``."""
        source_path = Path(source_path)
        if source_path.is_file():
            return cls(name, source_path, f"{name}/{source_path.name}")
        return cls(name, source_path, name)

    @classmethod
    def for_settings(cls, settings_path: Path) -> 'SyncTarget':
        """The tool's own settings file, stored at a reserved path."""
        reserved = f"{SETTINGS_DIR}/{SETTINGS_FILE}"
        return cls(SETTINGS_TARGET, Path(settings_path), reserved[1:])


@dataclass
class ChangeReport:
    """Result of comparing a local source with its copy in the working copy."""

    has_changes: bool
    is_new_target: bool = False
    changed_file_count: int = 0
    insertion_count: int = 0
    deletion_count: int = 0
    changed_paths: List[str] = field(default_factory=list)


@dataclass
class DiffPreview:
    """Human-readable summary of what a push would change."""

    stat: str
    file_count: int = 0
    insertions: int = 0
    deletions: int = 0
    full_diff: Optional[str] = None
    is_new_target: bool = False


@dataclass
class PushRecord:
    """Outcome of a successful push."""

    branch_name: str
    commit_message: str
    files_committed: List[str]
    repository_url: str = ''


@dataclass
class PullRecord:
    """A repository directory copied out for review."""

    directory: str
    destination: Path
    files_copied: List[str]
    repository_url: str = ''
