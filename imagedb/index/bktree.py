# imagedb/index/bktree.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple, Union

from ..core.errors import TreeNotReadyError
from .hashing import HASH_BITS, to_unsigned

HashFunction = Callable[[str], int]
DistanceFunction = Callable[[int, int], int]
Query = Union[str, int]


@dataclass
class FileNode:
    path: str
    hash: int
    children: Dict[int, "FileNode"] = field(default_factory=dict)

    def __iter__(self) -> Iterator[str]:
        """Pre-order paths of this node and its subtree."""
        stack: List[FileNode] = [self]
        while stack:
            node = stack.pop()
            yield node.path
            stack.extend(reversed(list(node.children.values())))

    def descendants(self) -> Iterator[Tuple[str, int]]:
        """Pre-order ``(path, hash)`` pairs below this node, excluding itself."""
        stack: List[FileNode] = list(reversed(list(self.children.values())))
        while stack:
            node = stack.pop()
            yield node.path, node.hash
            stack.extend(reversed(list(node.children.values())))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "hash": self.hash,
            "children": {str(d): child.to_dict() for d, child in self.children.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileNode":
        node = cls(path=data["path"], hash=to_unsigned(int(data["hash"])))
        for d, child in (data.get("children") or {}).items():
            node.children[int(d)] = cls.from_dict(child)
        return node


class FileBKTree:
    """BK-tree of file paths keyed by perceptual hash.

    Notes
    -----
    - Every node in the subtree under an edge ``k`` is exactly ``k`` away from
      the edge's parent. Searches prune with the triangle inequality, so the
      distance function must be a metric with values in ``[0, 64]``. This is a
      precondition and is not checked.
    - Two paths may share a hash; a path may only appear once.
    - The hash function must be deterministic for a given path, which is what
      makes the duplicate check during insertion sufficient.
    - Removal re-inserts every descendant of the removed node. Promoting a
      child in its place would break the edge distances of that child's
      subtree.
    """

    def __init__(
        self,
        hash_function: Optional[HashFunction] = None,
        distance_function: Optional[DistanceFunction] = None,
    ) -> None:
        self.hash_function: Optional[HashFunction] = hash_function
        self.distance_function: Optional[DistanceFunction] = distance_function
        self._root: Optional[FileNode] = None
        self._size: int = 0

    @property
    def root(self) -> Optional[str]:
        """Path stored at the root, or None for an empty tree."""
        return self._root.path if self._root is not None else None

    def _hash_of(self, path: str) -> int:
        if self.hash_function is None:
            raise TreeNotReadyError("Tree has no hash function attached", missing="hash_function")
        return self.hash_function(path)

    def _distance(self, a: int, b: int) -> int:
        if self.distance_function is None:
            raise TreeNotReadyError("Tree has no distance function attached", missing="distance_function")
        return self.distance_function(a, b)

    def _resolve(self, query: Query) -> int:
        """Strings are paths to hash, integers are hashes."""
        if isinstance(query, str):
            return self._hash_of(query)
        return query

    # ----------------------------
    # Construction
    # ----------------------------
    def insert(self, path: str, hash_value: int) -> bool:
        """Add a path with a known hash.

        Returns False without changing the tree if the path is met on the
        way down.
        """
        if self._root is None:
            self._root = FileNode(path=path, hash=hash_value)
            self._size += 1
            return True

        node = self._root
        if node.path == path:
            return False
        while True:
            diff = self._distance(hash_value, node.hash)
            child = node.children.get(diff)
            if child is None:
                node.children[diff] = FileNode(path=path, hash=hash_value)
                self._size += 1
                return True
            if child.path == path:
                return False
            node = child

    def add(self, path: str) -> bool:
        """Hash a path and add it to the tree.

        Errors from the hash function propagate and leave the tree unchanged.
        """
        return self.insert(path, self._hash_of(path))

    def remove(self, path: str, hash_value: Optional[int] = None) -> bool:
        """Remove a path and re-insert its descendants.

        Args:
            path: Path to remove
            hash_value: Stored hash of the path; computed when omitted

        Returns:
            True if the path was present
        """
        if self._root is None:
            return False
        if hash_value is None:
            hash_value = self._hash_of(path)
        parent, node = self._lookup_exact(path, hash_value)
        if node is None:
            return False

        if parent is None:
            self._root = None
        else:
            del parent.children[self._distance(parent.hash, node.hash)]

        orphans = list(node.descendants())
        self._size -= 1 + len(orphans)
        for orphan_path, orphan_hash in orphans:
            self.insert(orphan_path, orphan_hash)
        return True

    # ----------------------------
    # Queries
    # ----------------------------
    def contains(self, path: str, hash_value: Optional[int] = None) -> bool:
        """Check whether the exact path is stored."""
        if self._root is None:
            return False
        if hash_value is None:
            hash_value = self._hash_of(path)
        return self._lookup_exact(path, hash_value)[1] is not None

    def _lookup_exact(self, path: str, hash_value: int) -> Tuple[Optional[FileNode], Optional[FileNode]]:
        """Find ``(parent, node)`` for a path, comparing paths rather than hashes."""
        if self._root is None:
            return None, None

        queue: Deque[Tuple[Optional[FileNode], FileNode]] = deque([(None, self._root)])
        best_diff = HASH_BITS
        while queue:
            parent, node = queue.popleft()
            if node.path == path:
                return parent, node
            diff = self._distance(hash_value, node.hash)
            if diff < best_diff:
                best_diff = diff
            for d, child in node.children.items():
                if abs(d - diff) <= best_diff:
                    queue.append((node, child))
        return None, None

    def _lookup_all_nodes(self, hash_value: int, tolerance: int) -> Iterator[Tuple[FileNode, int]]:
        if self._root is None:
            return

        queue: Deque[FileNode] = deque([self._root])
        while queue:
            node = queue.popleft()
            diff = self._distance(hash_value, node.hash)
            if diff <= tolerance:
                yield node, diff
            # Everything under edge d is exactly d from this node, so its
            # distance to the query is at least |d - diff|
            for d, child in node.children.items():
                if abs(d - diff) <= tolerance:
                    queue.append(child)

    def lookup_all(self, query: Query, tolerance: int = 0) -> Iterator[str]:
        """Yield every path within ``tolerance`` of a hash or of a path's hash."""
        hash_value = self._resolve(query)
        for node, _ in self._lookup_all_nodes(hash_value, tolerance):
            yield node.path

    def lookup_all_distances(self, query: Query, tolerance: int = 0) -> Iterator[Tuple[str, int]]:
        """Like :meth:`lookup_all` but also yields each match's distance."""
        hash_value = self._resolve(query)
        for node, diff in self._lookup_all_nodes(hash_value, tolerance):
            yield node.path, diff

    def _lookup_nearest(self, hash_value: int) -> Optional[FileNode]:
        if self._root is None:
            return None

        queue: Deque[FileNode] = deque([self._root])
        best_node: Optional[FileNode] = None
        best_diff = HASH_BITS
        while queue:
            node = queue.popleft()
            diff = self._distance(hash_value, node.hash)
            if diff < best_diff or best_node is None:
                best_node = node
                best_diff = diff
            if best_diff == 0:
                break
            for d, child in node.children.items():
                if abs(d - diff) < best_diff:
                    queue.append(child)
        return best_node

    def lookup_distance(self, query: Query) -> Tuple[Optional[str], int]:
        """Nearest stored path and its distance, or ``(None, 0)`` when empty.

        Ties between equally close paths resolve to whichever is met first.
        """
        hash_value = self._resolve(query)
        node = self._lookup_nearest(hash_value)
        if node is None:
            return None, 0
        return node.path, self._distance(node.hash, hash_value)

    def lookup(self, query: Query) -> Optional[str]:
        """Nearest stored path, or None when the tree is empty."""
        return self.lookup_distance(query)[0]

    def enumerate(self) -> Iterator[str]:
        """Yield every stored path in pre-order."""
        if self._root is None:
            return iter(())
        return iter(self._root)

    # ----------------------------
    # Serialization
    # ----------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Plain nested form. The hash and distance functions are not included."""
        return {"root": self._root.to_dict() if self._root is not None else None}

    @classmethod
    def from_dict(
        cls,
        data: Optional[Dict[str, Any]],
        hash_function: Optional[HashFunction] = None,
        distance_function: Optional[DistanceFunction] = None,
    ) -> "FileBKTree":
        """Rebuild a tree from :meth:`to_dict` output.

        The functions must be attached before the tree is queried.
        """
        tree = cls(hash_function, distance_function)
        root = (data or {}).get("root")
        if root is not None:
            tree._root = FileNode.from_dict(root)
            tree._size = sum(1 for _ in tree._root)
        return tree

    # ----------------------------
    # Introspection / utilities
    # ----------------------------
    def __iter__(self) -> Iterator[str]:
        return self.enumerate()

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.contains(path)

    def __len__(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._root is None

    def __bool__(self) -> bool:
        return not self.is_empty()
