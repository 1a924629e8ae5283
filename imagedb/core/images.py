"""
Image file helpers: decoding, hashing and placing files in the image folder.
"""

import logging
import os
import re
import shutil
from itertools import chain
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..index.hashing import compute_hash
from .errors import HashComputationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_DIGITS = re.compile(r'(\d+)')


def load_pixels(path: PathLike) -> np.ndarray:
    """
    Decode an image file into an RGB uint8 array.

    Raises:
        HashComputationError: If the file is missing or is not a readable image
    """
    try:
        with Image.open(path) as image:
            return np.asarray(image.convert("RGB"))
    except (OSError, UnidentifiedImageError) as e:
        raise HashComputationError(f"Could not read image {path}: {e}", path=str(path)) from e


def hash_file(path: PathLike) -> int:
    """Compute the perceptual hash of an image file."""
    return compute_hash(load_pixels(path))


def natural_sort_key(name: str) -> Tuple:
    """
    Sort key comparing runs of digits by value.

    ``file9`` sorts before ``file22``. The full name breaks ties such
    as ``file01`` against ``file1``.
    """
    parts = _DIGITS.split(name)
    key: List = [int(part) if i % 2 else part for i, part in enumerate(parts)]
    return tuple(key), name


def sorted_files(directory: PathLike) -> List[Path]:
    """Regular files directly inside a directory, in natural order."""
    files = [p for p in Path(directory).iterdir() if p.is_file()]
    return sorted(files, key=lambda p: natural_sort_key(p.name))


def next_file_path(directory: PathLike, ext: str, name_format: str) -> Path:
    """
    Find a free file name in a directory.

    ``{num}`` in the format is replaced by a number not used by any file stem
    in the directory; ``{ext}`` is replaced by the extension, which is
    appended when the format has no ``{ext}``. The number is not guaranteed
    to be sequential.
    """
    directory = Path(directory)
    stems = {p.stem for p in directory.iterdir() if p.is_file()}
    count = len(stems)

    # count + 1 candidates for count taken stems, so one is always free
    for num in chain([count + 1], range(1, count + 1)):
        name = name_format.replace("{num}", str(num))
        if name.replace("{ext}", "") not in stems:
            break

    if "{ext}" in name:
        return directory / name.replace("{ext}", ext)
    return directory / f"{name}{ext}"


def display_path(path: PathLike) -> str:
    """Relative path when inside the working directory, absolute otherwise."""
    cwd = os.path.abspath(os.getcwd())
    full = os.path.abspath(path)
    if full == cwd or full.startswith(cwd + os.sep):
        return os.path.relpath(full, cwd)
    return full


def move_to_image_folder(file: PathLike, image_folder: PathLike, name_format: str) -> Path:
    """
    Move a file into the image folder under a new, unused name.

    Returns:
        Destination path
    """
    folder = Path(image_folder)
    folder.mkdir(parents=True, exist_ok=True)
    dest = next_file_path(folder, Path(file).suffix, name_format)
    shutil.move(str(file), str(dest))
    logger.info(f"Moved file to \"{display_path(dest)}\"")
    return dest
