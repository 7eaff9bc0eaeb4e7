#!/usr/bin/env python3
"""
Tests for settings loading and sanitization.
"""

from unittest.mock import MagicMock

import pytest
import yaml

from anvil.core.settings import (
    DEFAULT_BRANCH,
    REDACTED_EMAIL,
    REDACTED_SSH_KEY_PATH,
    REDACTED_USERNAME,
    AnvilSettings,
    detect_ssh_key,
    is_git_config_masked,
    load_settings,
    regenerate_git_config,
    sanitize_settings,
    sanitized_settings_file,
)
from anvil.errors import ConfigurationError, ErrorKind
from anvil.utils.runner import CommandResult

SAMPLE_SETTINGS = {
    'github': {
        'config_repo': 'owner/dotfiles',
        'branch': 'trunk',
        'local_path': '~/.anvil/dotfiles',
        'token_env_var': 'ANVIL_TEST_TOKEN',
    },
    'git': {
        'username': 'Ada Lovelace',
        'email': 'ada@example.com',
        'ssh_key_path': '~/.ssh/id_ed25519',
    },
    'configs': {
        'app-x': '~/.config/app-x',
    },
}


@pytest.fixture
def settings_file(tmp_path):
    path = tmp_path / 'settings.yaml'
    path.write_text(yaml.safe_dump(SAMPLE_SETTINGS))
    return path


class TestLoadSettings:
    """Test reading the settings file."""

    def test_load(self, settings_file):
        settings = load_settings(settings_file)

        assert settings.config_repo == 'owner/dotfiles'
        assert settings.branch == 'trunk'
        assert settings.token_env_var == 'ANVIL_TEST_TOKEN'

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(tmp_path / 'missing.yaml')

        assert exc_info.value.kind == ErrorKind.CONFIGURATION
        assert 'not found' in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('github: [unclosed\n')

        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('- just\n- a list\n')

        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / 'settings.yaml'
        path.write_text('')

        settings = load_settings(path)

        assert settings.branch == DEFAULT_BRANCH
        assert settings.config_repo is None
        with pytest.raises(ConfigurationError):
            settings.validate_for_push()


class TestRepositoryHandle:
    """Test resolving settings into a repository handle."""

    def test_handle_with_token(self, settings_file, isolated_git):
        settings = load_settings(settings_file)

        handle = settings.to_repository_handle({'ANVIL_TEST_TOKEN': 'tok'})

        assert handle.remote_identifier == 'owner/dotfiles'
        assert handle.tracked_branch == 'trunk'
        assert handle.auth_token == 'tok'
        assert handle.local_clone_path == isolated_git / '.anvil' / 'dotfiles'
        assert handle.ssh_key_path == isolated_git / '.ssh' / 'id_ed25519'
        assert handle.committer_name == 'Ada Lovelace'
        assert handle.committer_email == 'ada@example.com'

    def test_handle_without_token(self, settings_file):
        handle = load_settings(settings_file).to_repository_handle({})

        assert handle.auth_token is None
        assert handle.clone_url == 'git@github.com:owner/dotfiles.git'

    def test_missing_repository(self, tmp_path):
        settings = AnvilSettings(tmp_path / 'settings.yaml', {'github': {}})

        with pytest.raises(ConfigurationError) as exc_info:
            settings.to_repository_handle({})

        assert 'github.config_repo' in str(exc_info.value)


class TestAppPaths:
    """Test per-app path lookup."""

    def test_configured_app(self, settings_file, isolated_git):
        settings = load_settings(settings_file)

        assert settings.resolve_app_path('app-x') == isolated_git / '.config' / 'app-x'

    def test_unconfigured_app(self, settings_file):
        settings = load_settings(settings_file)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.resolve_app_path('app-y')

        assert 'app-y: /path/to/your/app-y/configs' in str(exc_info.value)


class TestSanitization:
    """Test the sanitized copy pushed to the repository."""

    def test_git_identity_masked(self, settings_file):
        settings = load_settings(settings_file)

        data = sanitize_settings(settings)

        assert data['git'] == {
            'username': REDACTED_USERNAME,
            'email': REDACTED_EMAIL,
            'ssh_key_path': REDACTED_SSH_KEY_PATH,
        }
        assert data['github'] == SAMPLE_SETTINGS['github']
        assert settings.git['username'] == 'Ada Lovelace'

    def test_masked_detection(self, settings_file, tmp_path):
        settings = load_settings(settings_file)

        assert not is_git_config_masked(settings)
        assert is_git_config_masked(AnvilSettings(tmp_path, sanitize_settings(settings)))

    def test_sanitized_file_is_temporary(self, settings_file):
        settings = load_settings(settings_file)

        with sanitized_settings_file(settings) as path:
            assert path.name == 'settings.yaml'
            written = yaml.safe_load(path.read_text())
            assert written['git']['email'] == REDACTED_EMAIL
            assert written['configs'] == SAMPLE_SETTINGS['configs']

        assert not path.exists()
        assert not path.parent.exists()


class TestRegenerateGitConfig:
    """Test restoring the git identity in a pulled settings file."""

    @pytest.fixture
    def pulled_file(self, settings_file, tmp_path):
        path = tmp_path / 'temp' / 'anvil' / 'settings.yaml'
        path.parent.mkdir(parents=True)
        path.write_text(yaml.safe_dump(sanitize_settings(load_settings(settings_file))))
        return path

    def test_identity_taken_from_global_git_config(self, pulled_file, isolated_git):
        (isolated_git / '.gitconfig').write_text('[user]\n\tname = Grace Hopper\n\temail = grace@example.com\n')
        (isolated_git / '.ssh').mkdir()
        (isolated_git / '.ssh' / 'id_rsa').write_text('key')

        assert regenerate_git_config(pulled_file) is True

        data = yaml.safe_load(pulled_file.read_text())
        assert data['git'] == {
            'username': 'Grace Hopper',
            'email': 'grace@example.com',
            'ssh_key_path': '~/.ssh/id_rsa',
        }
        assert data['github'] == SAMPLE_SETTINGS['github']

    def test_missing_git_identity_leaves_empty_values(self, pulled_file):
        runner = MagicMock()
        runner.run.return_value = CommandResult(['git', 'config'], 1, '', '')

        assert regenerate_git_config(pulled_file, runner=runner) is True

        git = yaml.safe_load(pulled_file.read_text())['git']
        assert git['username'] == ''
        assert git['email'] == ''
        assert git['ssh_key_path'] == '~/.ssh/id_ed25519'

    def test_unmasked_file_untouched(self, settings_file):
        before = settings_file.read_text()

        assert regenerate_git_config(settings_file) is False
        assert settings_file.read_text() == before

    def test_ssh_key_detection_order(self, tmp_path):
        ssh = tmp_path / '.ssh'
        ssh.mkdir()
        assert detect_ssh_key(tmp_path) == '~/.ssh/id_ed25519'

        (ssh / 'id_ecdsa').write_text('k')
        (ssh / 'id_rsa').write_text('k')
        assert detect_ssh_key(tmp_path) == '~/.ssh/id_rsa'

    def test_temp_dir_next_to_settings(self, settings_file, tmp_path):
        assert load_settings(settings_file).temp_dir == tmp_path / 'temp'
