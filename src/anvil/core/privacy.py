#!/usr/bin/env python3
"""
Privacy gate for Anvil.

Configuration files carry API keys, paths and personal details, so nothing is
pushed until the target repository is shown to be reachable with the
operator's credentials and unreachable without them.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import requests

from ..errors import AnvilError, ErrorCode, SecurityBlocked
from ..utils.logger import get_logger
from ..utils.runner import CommandRunner
from .models import RepositoryHandle

PROBE_TIMEOUT = 10
LS_REMOTE_TIMEOUT = 60


@dataclass
class PrivacyVerdict:
    """Result of a privacy check."""

    allowed: bool
    reason: str = ''
    code: Optional[ErrorCode] = None


def http_probe(url: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """Whether ``url`` answers an anonymous HEAD request with a 2xx status."""
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException:
        return False
    return 200 <= response.status_code < 300


class PrivacyGate:
    """Refuses pushes to repositories that are public or cannot be verified."""

    def __init__(self, runner: Optional[CommandRunner] = None,
                 probe: Optional[Callable[[str], bool]] = None):
        self.logger = get_logger(f"{__name__}.PrivacyGate")
        self.runner = runner
        self.probe = probe or http_probe

    def _authenticated_access(self, handle: RepositoryHandle) -> bool:
        runner = self.runner or CommandRunner(env=handle.git_environment())
        try:
            result = runner.run('git', ['ls-remote', handle.clone_url, 'HEAD'],
                                timeout=LS_REMOTE_TIMEOUT)
        except AnvilError as e:
            self.logger.debug(f"ls-remote could not run: {e}")
            return False
        return result.succeeded

    def check(self, handle: RepositoryHandle) -> PrivacyVerdict:
        """Decide whether pushing to ``handle`` is allowed."""
        if not self._authenticated_access(handle):
            return PrivacyVerdict(
                allowed=False,
                code=ErrorCode.AUTHENTICATION_FAILED,
                reason=(
                    "SECURITY BLOCK: Cannot verify repository privacy - authentication failed\n"
                    f"Repository: {handle.display_url}\n"
                    "Anvil REQUIRES private repositories for configuration data.\n"
                    "Configure proper authentication (GITHUB_TOKEN or SSH keys) before pushing"
                ),
            )

        url = handle.web_url
        if url and self.probe(url):
            return PrivacyVerdict(
                allowed=False,
                code=ErrorCode.PUBLIC_REPOSITORY,
                reason=(
                    f"SECURITY BLOCK: Repository '{handle.remote_identifier}' is PUBLIC. "
                    "Configuration push denied.\n"
                    f"Make it private at {url}/settings "
                    "(Danger Zone > Change repository visibility > Private)"
                ),
            )

        self.logger.debug(f"Repository privacy verified for {handle.display_url}")
        return PrivacyVerdict(allowed=True)

    def verify_private(self, handle: RepositoryHandle):
        """Raise SecurityBlocked unless the repository is verifiably private."""
        verdict = self.check(handle)
        if not verdict.allowed:
            raise SecurityBlocked(verdict.reason, operation='verify-privacy', code=verdict.code)
