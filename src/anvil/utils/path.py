import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Union

# Never copied, compared or listed: a nested repository would be staged as a gitlink
IGNORED_NAMES = ('.git',)


def expand_path(path: Union[str, Path], home: Optional[Path] = None) -> Path:
    """Expand ``~`` against ``home`` (defaults to the user's home) and make absolute."""
    path = Path(path)
    if not home:
        home = Path.home()
    parts = path.parts
    if parts and parts[0] == '~':
        path = Path(home, *parts[1:])
    return path.expanduser().absolute()


def has_content(path: Path) -> bool:
    """
    Whether a local source has anything worth pushing.

    A file counts when it is non-empty; a directory when it has at least one
    entry other than ``.git``.
    """
    if path.is_file():
        return path.stat().st_size > 0
    if path.is_dir():
        with os.scandir(path) as entries:
            return any(entry.name not in IGNORED_NAMES for entry in entries)
    return False


def walk_tree(root: Path) -> Dict[str, bool]:
    """
    Map every path below ``root`` to whether it is a directory.

    Keys are POSIX-style relative paths. ``.git`` entries are skipped.
    Symbolic links are followed, matching what ``mirror_merge`` copies.
    """
    tree = {}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_NAMES)
        base = Path(dirpath)
        for name in dirnames:
            tree[(base / name).relative_to(root).as_posix()] = True
        for name in sorted(filenames):
            if name in IGNORED_NAMES:
                continue
            tree[(base / name).relative_to(root).as_posix()] = False
    return tree


def list_files(root: Path, relative_to: Path) -> List[str]:
    """Sorted POSIX paths of every file under ``root``, relative to ``relative_to``."""
    if root.is_file():
        return [root.relative_to(relative_to).as_posix()]
    files = []
    for rel, is_dir in walk_tree(root).items():
        if not is_dir:
            files.append((root / rel).relative_to(relative_to).as_posix())
    return sorted(files)


def mirror_merge(source: Path, destination: Path):
    """
    Copy ``source`` over ``destination`` without deleting anything.

    Files are copied file to file; directories are merged recursively,
    overwriting files that exist in both and leaving destination-only files
    in place. Symbolic links are copied as their targets; ``.git`` entries
    are left out.
    """
    if source.is_dir():
        if destination.exists() and not destination.is_dir():
            destination.unlink()
        shutil.copytree(source, destination, dirs_exist_ok=True,
                        ignore=shutil.ignore_patterns(*IGNORED_NAMES))
    else:
        if destination.is_dir():
            shutil.rmtree(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
