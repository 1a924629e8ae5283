"""
Similarity index for images.

Perceptual hashing turns pixel data into 64-bit fingerprints, and the
BK-tree stores file paths keyed by those fingerprints for nearest-neighbour
and tolerance searches under Hamming distance.
"""

from .bktree import FileBKTree, FileNode
from .hashing import HASH_BITS, compute_hash, hash_distance

__all__ = [
    'FileBKTree',
    'FileNode',
    'HASH_BITS',
    'compute_hash',
    'hash_distance',
]
