#!/usr/bin/env python3
"""
Diff preview for a pending push.

The preview stages the local source in the working copy, reads git's view
of the change and resets the working copy again. It is advisory only: any
failure yields no preview instead of an error.
"""

import re
from typing import Optional, Tuple

from ..errors import AnvilError
from ..utils.logger import get_logger
from .git_handler import GitHandler
from .models import ChangeReport, DiffPreview, SyncTarget

# Above this many changed lines only the stat summary is shown
FULL_DIFF_LINE_LIMIT = 50

_FILES_CHANGED_RE = re.compile(r'(\d+) files? changed')


def extract_file_count(stat_output: str) -> int:
    """Parse the file count from the summary line of ``git diff --stat``."""
    match = _FILES_CHANGED_RE.search(stat_output)
    return int(match.group(1)) if match else 0


def parse_numstat(numstat_output: str) -> Tuple[int, int, int]:
    """
    Sum ``git diff --numstat`` output.

    Returns:
        (files, insertions, deletions); binary files count as a file with
        no line changes
    """
    files = insertions = deletions = 0
    for line in numstat_output.splitlines():
        parts = line.split('\t', 2)
        if len(parts) < 3:
            continue
        files += 1
        if parts[0].isdigit():
            insertions += int(parts[0])
        if parts[1].isdigit():
            deletions += int(parts[1])
    return files, insertions, deletions


def wants_full_diff(file_count: int, insertions: int, deletions: int) -> bool:
    return file_count == 1 and insertions + deletions <= FULL_DIFF_LINE_LIMIT


class DiffSummarizer:
    """Builds a DiffPreview for a sync target."""

    def __init__(self, git_handler: GitHandler):
        self.logger = get_logger(f"{__name__}.DiffSummarizer")
        self.git_handler = git_handler

    def summarize(self, target: SyncTarget,
                  report: Optional[ChangeReport] = None) -> Optional[DiffPreview]:
        """
        Preview what pushing ``target`` would change.

        Returns:
            DiffPreview, or None when the preview could not be produced
        """
        try:
            return self._summarize(target, report)
        except (AnvilError, OSError) as e:
            self.logger.warning(f"Unable to generate diff preview: {e}")
            return None
        finally:
            try:
                self.git_handler.cleanup_staged_changes()
            except AnvilError as e:
                self.logger.warning(f"Failed to reset working copy after preview: {e}")

    def _summarize(self, target: SyncTarget, report: Optional[ChangeReport]) -> DiffPreview:
        path = target.repo_relative_path
        self.git_handler.mirror_source(target.local_source_path, path)
        self.git_handler.stage_all()

        stat = self.git_handler.staged_diff(path, '--stat').strip()
        file_count, insertions, deletions = parse_numstat(
            self.git_handler.staged_diff(path, '--numstat')
        )
        if not file_count:
            file_count = extract_file_count(stat)

        preview = DiffPreview(
            stat=stat,
            file_count=file_count,
            insertions=insertions,
            deletions=deletions,
            is_new_target=bool(report and report.is_new_target),
        )
        if wants_full_diff(file_count, insertions, deletions):
            preview.full_diff = self.git_handler.staged_diff(path)
        return preview
