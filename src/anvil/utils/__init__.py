"""
Utility modules for Anvil.

This package contains logging, external command execution and filesystem
helpers used throughout Anvil.
"""

from .logger import get_logger, setup_logging
from .runner import CommandResult, CommandRunner, run_command
from .path import expand_path, has_content, mirror_merge

__all__ = [
    'get_logger',
    'setup_logging',
    'CommandResult',
    'CommandRunner',
    'run_command',
    'expand_path',
    'has_content',
    'mirror_merge',
]
