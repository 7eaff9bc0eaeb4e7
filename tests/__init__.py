"""
Test package for Anvil.

This package contains unit tests and integration tests for the configuration
sync subsystem: command execution, working-copy management, privacy gate,
change detection, diff previews, settings and the CLI.
"""

import sys
from pathlib import Path

# Add src directory to path so tests can import anvil modules
test_dir = Path(__file__).parent
src_dir = test_dir.parent / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

DEFAULT_TEST_BRANCH = 'main'
DEFAULT_TEST_APP = 'app-x'

__all__ = [
    'DEFAULT_TEST_BRANCH',
    'DEFAULT_TEST_APP',
]
