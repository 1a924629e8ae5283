"""
Handle for the on-disk image database.

``ImageDatabase`` loads the tree and usage set on first use, tracks whether
either has changed and writes changed data back when it is saved or when
its ``with`` block exits. The workflow is "load once, mutate, save
once" per run; the handle is not meant to be shared between threads.
"""

import logging
from pathlib import Path
from typing import Optional, Set, Union

from ..config import ImageDbConfig
from ..index.bktree import FileBKTree
from ..index.hashing import hash_distance
from . import storage
from .errors import HashComputationError
from .images import hash_file

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ImageDatabase:
    """Lazily loaded tree and usage set with dirty tracking."""

    def __init__(self, config: Optional[ImageDbConfig] = None):
        self.config = config or ImageDbConfig()
        self._tree: Optional[FileBKTree] = None
        self._used: Optional[Set[str]] = None
        self.tree_updated = False
        self.usage_updated = False

    def __enter__(self) -> "ImageDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Every tree operation leaves the tree consistent, so changes made
        # before a failure are kept
        self.save_all()

    # ----------------------------
    # Tree
    # ----------------------------
    def _hash_image(self, path: str) -> int:
        return hash_file(self.config.image_folder_path / path)

    @property
    def tree(self) -> FileBKTree:
        """The image tree, loaded on first access."""
        self.load_tree()
        return self._tree

    @tree.setter
    def tree(self, value: FileBKTree) -> None:
        self._tree = value

    def load_tree(self) -> None:
        """Load the tree; a missing file gives an empty tree marked for saving."""
        if self._tree is not None:
            return
        self.tree_updated = False

        tree = storage.load_tree(self.config.database_path)
        if tree is None:
            self.tree_updated = True
            tree = FileBKTree()
        tree.hash_function = self._hash_image
        tree.distance_function = hash_distance
        self._tree = tree

    def drop_tree(self) -> None:
        """Unload the tree without saving changes."""
        self._tree = None
        self.tree_updated = False

    def save_tree(self) -> None:
        if not self.tree_updated or self._tree is None:
            return
        storage.write_tree(self._tree, self.config.database_path, self.config.show_json)
        self.tree_updated = False
        logger.info("Saved database.")

    # ----------------------------
    # Usage
    # ----------------------------
    @property
    def used(self) -> Set[str]:
        """Paths marked as used, loaded on first access."""
        self.load_usage()
        return self._used

    @used.setter
    def used(self, value: Set[str]) -> None:
        self._used = value

    def load_usage(self) -> None:
        if self._used is not None:
            return
        self.usage_updated = False

        used = storage.load_usage(self.config.usage_file_path)
        if used is None:
            self.usage_updated = True
            used = set()
        self._used = used

    def drop_usage(self) -> None:
        """Unload the usage set without saving changes."""
        self._used = None
        self.usage_updated = False

    def save_usage(self) -> None:
        if not self.usage_updated or self._used is None:
            return
        storage.write_usage(self._used, self.config.usage_file_path, self.config.show_json)
        self.usage_updated = False
        logger.info("Saved usage file.")

    def save_all(self) -> None:
        self.save_tree()
        self.save_usage()

    # ----------------------------
    # Operations
    # ----------------------------
    def tree_path(self, file: PathLike) -> str:
        """Path of a file as stored in the tree."""
        return self.config.relative_to_image_folder(str(file))

    def try_add_image(self, file: PathLike) -> bool:
        """
        Add an image file to the tree.

        Unreadable images are logged and skipped rather than raised.

        Returns:
            True if the image was added
        """
        if not file:
            return False

        path = self.tree_path(file)
        try:
            added = self.tree.add(path)
        except HashComputationError as e:
            logger.error(f"Encountered error while trying to add image {file}: {e.message}", extra={'path': path})
            return False

        if added:
            self.tree_updated = True
            logger.info(f"Added \"{path}\"", extra={'path': path})
        else:
            logger.info(f"Skipping existing image \"{path}\"")
        return added

    def remove_image(self, file: PathLike) -> bool:
        """Remove an image file from the tree."""
        path = self.tree_path(file)
        removed = self.tree.remove(path)
        if removed:
            self.tree_updated = True
            logger.info(f"Removed file: \"{path}\"", extra={'path': path})
        return removed

    def add_usage(self, path: str) -> bool:
        """Mark a tree path as used; False if it already was."""
        if path in self.used:
            return False
        self.used.add(path)
        self.usage_updated = True
        return True

    def remove_usage(self, path: str) -> bool:
        if path not in self.used:
            return False
        self.used.discard(path)
        self.usage_updated = True
        return True
