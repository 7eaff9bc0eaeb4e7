"""
Anvil - personal machine bootstrap and configuration sync

This package synchronizes a curated configuration directory with a private
Git repository, one reviewed branch per push.
"""

__version__ = "1.0.0"
__description__ = "Personal machine bootstrap and private configuration sync"

VERSION = __version__
VERSION_INFO = tuple(map(int, __version__.split('.')))

__all__ = [
    'VERSION',
    'VERSION_INFO',
]
