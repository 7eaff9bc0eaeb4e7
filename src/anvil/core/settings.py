#!/usr/bin/env python3
"""
Settings for Anvil.

This module loads ``~/.anvil/settings.yaml``, resolves it into the
RepositoryHandle the sync core works with, and produces the sanitized copy of
the settings file that is pushed to the remote repository.
"""

import copy
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import yaml

from ..errors import AnvilError, ConfigurationError
from ..utils.logger import get_logger
from ..utils.path import expand_path
from ..utils.runner import CommandRunner
from .models import SETTINGS_FILE, RepositoryHandle

DEFAULT_SETTINGS_PATH = Path.home() / '.anvil' / SETTINGS_FILE
DEFAULT_BRANCH = 'main'
DEFAULT_LOCAL_PATH = '~/.anvil/dotfiles'
DEFAULT_TOKEN_ENV_VAR = 'GITHUB_TOKEN'

REDACTED_USERNAME = 'REDACTED_USERNAME'
REDACTED_EMAIL = 'REDACTED_EMAIL'
REDACTED_SSH_KEY_PATH = 'REDACTED_SSH_KEY_PATH'
REDACTED_VALUES = {
    'username': REDACTED_USERNAME,
    'email': REDACTED_EMAIL,
    'ssh_key_path': REDACTED_SSH_KEY_PATH,
}

SSH_KEY_NAMES = ('id_ed25519', 'id_ed25519_personal', 'id_rsa', 'id_rsa_personal', 'id_ecdsa')
GIT_CONFIG_TIMEOUT = 10
TEMP_DIR_NAME = 'temp'

logger = get_logger(__name__)


@dataclass
class AnvilSettings:
    """Parsed settings file."""

    path: Path
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def github(self) -> Dict[str, Any]:
        return self.data.get('github') or {}

    @property
    def git(self) -> Dict[str, Any]:
        return self.data.get('git') or {}

    @property
    def configs(self) -> Dict[str, str]:
        return self.data.get('configs') or {}

    @property
    def config_repo(self) -> Optional[str]:
        return self.github.get('config_repo')

    @property
    def branch(self) -> str:
        return self.github.get('branch') or DEFAULT_BRANCH

    @property
    def local_path(self) -> Path:
        return expand_path(self.github.get('local_path') or DEFAULT_LOCAL_PATH)

    @property
    def temp_dir(self) -> Path:
        """Where pulled directories are placed for review, next to the settings file."""
        return Path(self.path).parent / TEMP_DIR_NAME

    @property
    def token_env_var(self) -> str:
        return self.github.get('token_env_var') or DEFAULT_TOKEN_ENV_VAR

    def validate_for_push(self):
        if not self.config_repo:
            raise ConfigurationError(
                "GitHub repository not configured. "
                f"Please set 'github.config_repo' in your {self.path}",
                operation='load-config',
            )

    def to_repository_handle(self, environ: Optional[Mapping[str, str]] = None) -> RepositoryHandle:
        """Resolve credentials and paths into a RepositoryHandle."""
        self.validate_for_push()
        environ = os.environ if environ is None else environ

        token = environ.get(self.token_env_var) or None
        if token is None:
            logger.debug(f"No token in ${self.token_env_var}; relying on SSH authentication")

        ssh_key = self.git.get('ssh_key_path')
        return RepositoryHandle(
            remote_identifier=self.config_repo,
            tracked_branch=self.branch,
            local_clone_path=self.local_path,
            auth_token=token,
            ssh_key_path=expand_path(ssh_key) if ssh_key else None,
            committer_name=self.git.get('username'),
            committer_email=self.git.get('email'),
        )

    def resolve_app_path(self, app_name: str) -> Path:
        """Local path configured for ``app_name`` under ``configs``."""
        configured = self.configs.get(app_name)
        if not configured:
            raise ConfigurationError(
                f"App config path not configured in settings. Add it to {self.path}:\n"
                f"configs:\n  {app_name}: /path/to/your/{app_name}/configs",
                operation='resolve-app',
            )
        return expand_path(configured)


def load_settings(path: Optional[Union[str, Path]] = None) -> AnvilSettings:
    """
    Load the settings file.

    Raises:
        ConfigurationError: the file is missing, unreadable or not a YAML mapping
    """
    path = expand_path(path) if path else DEFAULT_SETTINGS_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Settings file not found: {path}", operation='load-config')
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read settings {path}: {e}", operation='load-config')

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping",
                                 operation='load-config')
    logger.debug(f"Loaded settings from {path}")
    return AnvilSettings(path=path, data=data)


def sanitize_settings(settings: AnvilSettings) -> Dict[str, Any]:
    """Deep copy of the settings data with the git identity masked."""
    data = copy.deepcopy(settings.data)
    git = data.get('git')
    if isinstance(git, dict):
        git['username'] = REDACTED_USERNAME
        git['email'] = REDACTED_EMAIL
        git['ssh_key_path'] = REDACTED_SSH_KEY_PATH
    return data


def is_git_config_masked(settings: AnvilSettings) -> bool:
    git = settings.git
    return (git.get('username') == REDACTED_USERNAME
            or git.get('email') == REDACTED_EMAIL
            or git.get('ssh_key_path') == REDACTED_SSH_KEY_PATH)


def _git_config_value(runner: CommandRunner, key: str) -> str:
    try:
        result = runner.run('git', ['config', '--global', key])
    except AnvilError as e:
        logger.debug(f"Could not read git {key}: {e}")
        return ''
    return result.stdout.strip() if result.succeeded else ''


def detect_ssh_key(home: Optional[Path] = None) -> str:
    """First common private key found in ``~/.ssh``, as a ``~`` path."""
    ssh_dir = (home or Path.home()) / '.ssh'
    for name in SSH_KEY_NAMES:
        if (ssh_dir / name).is_file():
            return f"~/.ssh/{name}"
    return f"~/.ssh/{SSH_KEY_NAMES[0]}"


def system_git_identity(runner: Optional[CommandRunner] = None) -> Dict[str, str]:
    """The local machine's git identity in settings-file form."""
    runner = runner or CommandRunner(timeout=GIT_CONFIG_TIMEOUT)
    return {
        'username': _git_config_value(runner, 'user.name'),
        'email': _git_config_value(runner, 'user.email'),
        'ssh_key_path': detect_ssh_key(),
    }


def regenerate_git_config(settings_path: Union[str, Path],
                          runner: Optional[CommandRunner] = None) -> bool:
    """
    Replace redacted git values in a pulled settings file with this machine's.

    Returns:
        True if the file was rewritten, False if it carried no placeholders

    Raises:
        ConfigurationError: the file cannot be read or written
    """
    settings = load_settings(settings_path)
    if not is_git_config_masked(settings):
        return False

    data = copy.deepcopy(settings.data)
    git = data.get('git') if isinstance(data.get('git'), dict) else {}
    for key, value in system_git_identity(runner).items():
        if git.get(key) in (None, '', REDACTED_VALUES[key]):
            git[key] = value
    data['git'] = git

    try:
        with open(settings.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Failed to write {settings.path}: {e}", operation='regenerate-git')
    logger.debug(f"Regenerated git identity in {settings.path}")
    return True


@contextmanager
def sanitized_settings_file(settings: AnvilSettings) -> Iterator[Path]:
    """Write a sanitized copy of the settings to a temporary file for pushing."""
    temp_dir = Path(tempfile.mkdtemp(prefix='anvil-sanitized-'))
    temp_file = temp_dir / SETTINGS_FILE
    try:
        with open(temp_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(sanitize_settings(settings), f, default_flow_style=False, sort_keys=False)
        yield temp_file
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
