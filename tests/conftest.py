"""
Shared fixtures for imagedb tests.

Provides synthetic images written with Pillow and a database configured
inside a temporary directory.
"""

import logging
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from imagedb.config import ImageDbConfig
from imagedb.core.database import ImageDatabase


def pattern(kind: str, width: int = 64, height: int = 64) -> np.ndarray:
    """Build a uint8 greyscale test pattern."""
    if kind == "hgrad":
        row = np.linspace(0, 255, width)
        data = np.tile(row, (height, 1))
    elif kind == "vgrad":
        col = np.linspace(0, 255, height)
        data = np.tile(col[:, None], (1, width))
    elif kind == "checker":
        y, x = np.indices((height, width))
        data = (((x * 4 // width) + (y * 4 // height)) % 2) * 255
    elif kind == "noise":
        data = np.random.default_rng(7).integers(0, 256, (height, width))
    elif kind == "uniform":
        data = np.full((height, width), 128)
    else:
        raise ValueError(kind)
    return data.astype(np.uint8)


def write_image(path: Path, kind: str, width: int = 64, height: int = 64) -> Path:
    """Write a test pattern as an RGB PNG."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pattern(kind, width, height)).convert("RGB").save(path)
    return path


@pytest.fixture(autouse=True)
def reset_imagedb_logger():
    """Drop handlers the CLI attaches so later tests do not log into closed streams."""
    yield
    logger = logging.getLogger("imagedb")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_image():
    return write_image


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory."""
    return ImageDbConfig(relative_base=str(tmp_path))


@pytest.fixture
def db(config):
    """Database with an existing, empty image folder."""
    config.image_folder_path.mkdir(parents=True, exist_ok=True)
    return ImageDatabase(config)
