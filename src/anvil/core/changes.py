#!/usr/bin/env python3
"""
Change detection between a local configuration source and the working copy.

Only path structure and byte content are compared. Symbolic links are
followed like regular files and permission bits are ignored.
"""

import difflib
import filecmp
from pathlib import Path
from typing import Dict, Tuple, Union

from ..errors import FileSystemError
from ..utils.logger import get_logger
from ..utils.path import has_content, walk_tree
from .models import ChangeReport


def _read_lines(path: Path):
    data = path.read_bytes()
    if b'\0' in data:
        return None
    return data.decode('utf-8', errors='replace').splitlines()


def line_delta(old: Path, new: Path) -> Tuple[int, int]:
    """
    Count inserted and deleted lines going from ``old`` to ``new``.

    Either path may be None for an added or removed file. Binary files
    count as zero lines.
    """
    old_lines = _read_lines(old) if old is not None else []
    new_lines = _read_lines(new) if new is not None else []
    if old_lines is None or new_lines is None:
        return 0, 0

    insertions = deletions = 0
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ('replace', 'delete'):
            deletions += i2 - i1
        if tag in ('replace', 'insert'):
            insertions += j2 - j1
    return insertions, deletions


class ChangeDetector:
    """Compares a local file or directory with its counterpart in the working copy."""

    def __init__(self):
        self.logger = get_logger(f"{__name__}.ChangeDetector")

    def detect(self, local_source_path: Union[str, Path],
               repo_target_path: Union[str, Path]) -> ChangeReport:
        """
        Compare ``local_source_path`` with ``repo_target_path``.

        Args:
            local_source_path: File or directory on the local machine
            repo_target_path: Corresponding absolute path inside the working copy

        Returns:
            ChangeReport describing the divergence

        Raises:
            FileSystemError: the local source is missing for an existing
                target, or a file cannot be read
        """
        local = Path(local_source_path)
        repo = Path(repo_target_path)

        try:
            if not repo.exists():
                return self._detect_new_target(local)

            if not local.exists():
                raise FileSystemError(
                    f"Local config path does not exist: {local}", operation='detect-changes'
                )
            report = self._compare(local, repo)
        except OSError as e:
            raise FileSystemError(
                f"Failed to compare {local} with {repo}: {e}", operation='detect-changes'
            ) from e

        self.logger.debug(
            f"{local} vs {repo}: changes={report.has_changes} "
            f"files={report.changed_file_count} +{report.insertion_count} -{report.deletion_count}"
        )
        return report

    def _detect_new_target(self, local: Path) -> ChangeReport:
        if not local.exists() or not has_content(local):
            return ChangeReport(has_changes=False, is_new_target=True)

        report = ChangeReport(has_changes=True, is_new_target=True)
        if local.is_file():
            files = {local.name: local}
        else:
            files = {rel: local / rel for rel, is_dir in walk_tree(local).items() if not is_dir}

        for rel, path in files.items():
            insertions, _ = line_delta(None, path)
            report.insertion_count += insertions
            report.changed_file_count += 1
            report.changed_paths.append(rel)
        return report

    def _compare(self, local: Path, repo: Path) -> ChangeReport:
        report = ChangeReport(has_changes=False)

        if local.is_dir() != repo.is_dir():
            report.has_changes = True
            self._count_side(report, local, added=True)
            self._count_side(report, repo, added=False)
            return report

        if local.is_file():
            self._compare_files(report, local.name, local, repo)
            return report

        local_tree = walk_tree(local)
        repo_tree = walk_tree(repo)
        if set(local_tree) != set(repo_tree):
            report.has_changes = True

        for rel in sorted(set(local_tree) | set(repo_tree)):
            local_is_dir = local_tree.get(rel)
            repo_is_dir = repo_tree.get(rel)

            if repo_is_dir is None:
                if not local_is_dir:
                    self._record(report, rel, *line_delta(None, local / rel))
            elif local_is_dir is None:
                if not repo_is_dir:
                    self._record(report, rel, *line_delta(repo / rel, None))
            elif local_is_dir != repo_is_dir:
                report.has_changes = True
                report.changed_file_count += 1
                report.changed_paths.append(rel)
            elif not local_is_dir:
                self._compare_files(report, rel, local / rel, repo / rel)

        return report

    def _compare_files(self, report: ChangeReport, rel: str, local: Path, repo: Path):
        if filecmp.cmp(local, repo, shallow=False):
            return
        report.has_changes = True
        self._record(report, rel, *line_delta(repo, local))

    @staticmethod
    def _record(report: ChangeReport, rel: str, insertions: int, deletions: int):
        report.changed_file_count += 1
        report.insertion_count += insertions
        report.deletion_count += deletions
        report.changed_paths.append(rel)

    def _count_side(self, report: ChangeReport, root: Path, added: bool):
        files: Dict[str, Path]
        if root.is_file():
            files = {root.name: root}
        else:
            files = {rel: root / rel for rel, is_dir in walk_tree(root).items() if not is_dir}
        for rel, path in files.items():
            if added:
                self._record(report, rel, *line_delta(None, path))
            else:
                self._record(report, rel, *line_delta(path, None))
