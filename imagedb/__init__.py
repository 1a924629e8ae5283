"""imagedb - Index images by perceptual hash and find similar ones."""

__version__ = "0.1.0"

from .index.bktree import FileBKTree
from .index.hashing import compute_hash, hash_distance

__all__ = ["FileBKTree", "compute_hash", "hash_distance", "__version__"]
