"""
Reading and writing of the database files.

The tree and the usage set are stored as compact JSON inside gzip. Plain,
indented JSON copies can be written alongside for inspection. Every write
goes to a temporary file first and replaces the target only when complete.
"""

import gzip
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Set, Union

from ..index.bktree import FileBKTree
from .images import natural_sort_key

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@contextmanager
def _replacing(path: Path) -> Iterator[Path]:
    """
    Yield a temporary path that replaces ``path`` once the block succeeds.

    A failed write removes the temporary file and leaves ``path`` untouched.
    """
    tmp = Path(f"{path}.tmp")
    try:
        yield tmp
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def read_gzipped(path: PathLike) -> Optional[Any]:
    """Read gzipped JSON, or return None if the file does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    with gzip.open(path, 'rt', encoding='utf-8') as f:
        return json.load(f)


def write_gzipped(obj: Any, path: PathLike, include_uncompressed: bool = False) -> None:
    """
    Write an object as gzipped JSON.

    Args:
        obj: JSON-serializable object
        path: Destination file, replaced only after a complete write
        include_uncompressed: Also write indented JSON to ``path + ".json"``
    """
    with _replacing(Path(path)) as tmp:
        with gzip.open(tmp, 'wt', encoding='utf-8') as f:
            json.dump(obj, f, separators=(',', ':'))
    if include_uncompressed:
        write_json(obj, f"{path}.json")


def read_json(path: PathLike) -> Optional[Any]:
    """Read a plain JSON file, or return None if it does not exist."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def write_json(obj: Any, path: PathLike) -> None:
    with _replacing(Path(path)) as tmp:
        with open(tmp, 'w', encoding='utf-8') as f:
            json.dump(obj, f, indent=2)


def load_tree(path: PathLike) -> Optional[FileBKTree]:
    """Load a tree without its hash or distance function attached."""
    data = read_gzipped(path)
    if data is None:
        return None
    tree = FileBKTree.from_dict(data)
    logger.debug(f"Loaded {len(tree)} entries from {path}")
    return tree


def write_tree(tree: FileBKTree, path: PathLike, plain: bool = False) -> None:
    write_gzipped(tree.to_dict(), path, plain)


def load_usage(path: PathLike) -> Optional[Set[str]]:
    data = read_gzipped(path)
    if data is None:
        return None
    return set(data)


def sorted_paths(paths: Iterable[str]) -> list:
    """Paths in natural order, so ``image9`` comes before ``image22``."""
    return sorted(paths, key=natural_sort_key)


def write_usage(used: Set[str], path: PathLike, plain: bool = False) -> None:
    write_gzipped(sorted_paths(used), path, plain)
