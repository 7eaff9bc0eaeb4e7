"""Shared fixtures: a bare 'remote' repository reachable through a file:// URL."""

from datetime import datetime
from pathlib import Path
from typing import Dict, List

import pytest
from git import Actor, Repo

from anvil.core.models import RepositoryHandle
from anvil.core.privacy import PrivacyGate
from anvil.core.sync import SyncManager

from . import DEFAULT_TEST_BRANCH

ACTOR = Actor("Anvil Test", "anvil@example.com")
FIXED_NOW = datetime(2025, 3, 5, 14, 30)


class RemoteRepo:
    """Bare repository seeded with one commit on the default test branch."""

    def __init__(self, root: Path):
        self.path = root / 'remote.git'
        self.url = self.path.as_uri()

        Repo.init(self.path, bare=True)
        self._scratch = root / 'scratch'
        self._repo = Repo.init(self._scratch)
        self._repo.git.checkout('-b', DEFAULT_TEST_BRANCH)
        self._repo.create_remote('origin', self.url)
        self.commit_files({'README.md': '# configs\n'}, message='seed')

        with Repo(self.path) as bare:
            bare.git.symbolic_ref('HEAD', f'refs/heads/{DEFAULT_TEST_BRANCH}')

    def commit_files(self, files: Dict[str, str], message: str = 'update'):
        for rel, content in files.items():
            target = self._scratch / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        self._repo.git.add(A=True)
        self._repo.index.commit(message, author=ACTOR, committer=ACTOR)
        self._repo.remote('origin').push(f'{DEFAULT_TEST_BRANCH}:{DEFAULT_TEST_BRANCH}')

    def branches(self) -> List[str]:
        with Repo(self.path) as bare:
            return sorted(head.name for head in bare.heads)

    def show(self, branch: str, rel: str) -> str:
        with Repo(self.path) as bare:
            return bare.git.show(f'{branch}:{rel}')

    def files(self, branch: str) -> List[str]:
        with Repo(self.path) as bare:
            return bare.git.ls_tree('-r', '--name-only', branch).splitlines()

    def last_message(self, branch: str) -> str:
        with Repo(self.path) as bare:
            return bare.commit(branch).message.strip()


@pytest.fixture(autouse=True)
def isolated_git(tmp_path_factory, monkeypatch):
    """Keep the user's git configuration out of the tests."""
    home = tmp_path_factory.mktemp('home')
    monkeypatch.setenv('HOME', str(home))
    monkeypatch.setenv('GIT_CONFIG_NOSYSTEM', '1')
    monkeypatch.delenv('GIT_DIR', raising=False)
    return home


@pytest.fixture
def remote(tmp_path):
    return RemoteRepo(tmp_path)


@pytest.fixture
def handle(remote, tmp_path):
    return RepositoryHandle(
        remote_identifier=remote.url,
        tracked_branch=DEFAULT_TEST_BRANCH,
        local_clone_path=tmp_path / 'clone',
        committer_name=ACTOR.name,
        committer_email=ACTOR.email,
    )


@pytest.fixture
def private_gate():
    """Privacy gate whose anonymous probe never reaches the repository."""
    return PrivacyGate(probe=lambda url: False)


@pytest.fixture
def app_source(tmp_path):
    """Local ~/.config/app-x with a single init.lua."""
    source = tmp_path / 'config' / 'app-x'
    source.mkdir(parents=True)
    (source / 'init.lua').write_text('A')
    return source


@pytest.fixture
def make_manager(handle, private_gate):
    """Build a SyncManager with a fixed clock and a scripted confirmation."""

    def factory(answer=True, **kwargs):
        calls = []

        def confirm(target, report, preview):
            calls.append((target, report, preview))
            return answer

        kwargs.setdefault('privacy_gate', private_gate)
        manager = SyncManager(handle, confirm=confirm, clock=lambda: FIXED_NOW, **kwargs)
        manager.confirm_calls = calls
        return manager

    return factory
