"""
Core modules for Anvil.

This package contains the configuration-sync subsystem: the working-copy
manager, privacy gate, change detector, diff summarizer and the sync
orchestrator, plus the settings layer that feeds them.
"""

from .models import RepositoryHandle, SyncTarget, ChangeReport, DiffPreview, PushRecord, PullRecord
from .git_handler import GitHandler
from .privacy import PrivacyGate, PrivacyVerdict
from .changes import ChangeDetector
from .diff import DiffSummarizer
from .sync import SyncManager, SyncResult, SyncStatus, timestamped_branch_name
from .settings import AnvilSettings, load_settings, sanitized_settings_file

__all__ = [
    'RepositoryHandle',
    'SyncTarget',
    'ChangeReport',
    'DiffPreview',
    'PushRecord',
    'PullRecord',
    'GitHandler',
    'PrivacyGate',
    'PrivacyVerdict',
    'ChangeDetector',
    'DiffSummarizer',
    'SyncManager',
    'SyncResult',
    'SyncStatus',
    'timestamped_branch_name',
    'AnvilSettings',
    'load_settings',
    'sanitized_settings_file',
]
