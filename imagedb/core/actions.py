"""
Actions over an image database.

Each action works on an ``ImageDatabase`` and returns plain result objects;
rendering and prompting are left to the command-line layer.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from ..index.hashing import HASH_BITS
from . import storage
from .database import ImageDatabase
from .errors import ActionError
from .images import display_path, hash_file, move_to_image_folder, sorted_files

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_AUTO_DENY = -1
BACKUP_TARGETS = ("used", "db")


@dataclass
class LookupResult:
    """Closest stored image to a file."""
    file: str
    db_path: Optional[str]
    distance: int


@dataclass
class LookupReport:
    """Range query matches, plus the nearest image when nothing matched."""
    matches: List[Tuple[str, int]] = field(default_factory=list)
    closest: Optional[LookupResult] = None


@dataclass
class InsertResult:
    """
    Outcome of considering one file for insertion.

    ``inserted`` is True when the file was added, False when it was skipped
    and None when the decision is left to the caller (see :meth:`accept`).
    """
    file: Optional[str]
    lookup: LookupResult
    inserted: Optional[bool]

    def accept(self, db: ImageDatabase) -> str:
        """Add the undecided file after all."""
        dest = add_image(self.file, db)
        self.file = str(dest)
        self.inserted = True
        return self.file


@dataclass
class UseResult:
    path: str
    indexed: bool  # True if the image had to be added first
    newly_used: bool


def _require_file(file: PathLike, action: str) -> Path:
    path = Path(file)
    if not path.is_file():
        raise ActionError(f"File doesn't exist \"{file}\"", action=action)
    return path


def _require_dir(directory: PathLike, action: str) -> Path:
    path = Path(directory)
    if not path.is_dir():
        raise ActionError(f"Cannot find directory \"{directory}\"", action=action)
    return path


def init(db: ImageDatabase) -> Path:
    """Create the image folder and write an empty tree and usage file if missing."""
    folder = db.config.image_folder_path
    folder.mkdir(parents=True, exist_ok=True)
    db.load_tree()
    db.load_usage()
    db.tree_updated = True
    db.usage_updated = True
    db.save_all()
    return folder


def add_image(file: PathLike, db: ImageDatabase) -> Path:
    """Move a file into the image folder and add it to the tree."""
    _require_file(file, "add")
    dest = move_to_image_folder(file, db.config.image_folder_path, db.config.name_format)
    db.try_add_image(dest)
    return dest


def index_directory(directory: PathLike, db: ImageDatabase) -> List[Path]:
    """Move every file of a directory into the image folder and add it."""
    source = _require_dir(directory, "index")
    logger.info("Indexing directory...")
    added = [add_image(file, db) for file in sorted_files(source)]
    logger.info("Finished indexing.")
    return added


def find_closest(file: PathLike, db: ImageDatabase) -> LookupResult:
    """
    Find the stored image closest to a file.

    An empty tree reports the largest possible distance.
    """
    db_path, distance = db.tree.lookup_distance(hash_file(file))
    if db_path is None:
        distance = HASH_BITS
    return LookupResult(file=str(file), db_path=db_path, distance=distance)


def lookup(file: PathLike, db: ImageDatabase, tolerance: int = 0) -> LookupReport:
    """Stored images within ``tolerance`` of a file, else the closest one."""
    _require_file(file, "lookup")
    hash_value = hash_file(file)
    matches = list(db.tree.lookup_all_distances(hash_value, tolerance))
    if matches:
        return LookupReport(matches=matches)

    db_path, distance = db.tree.lookup_distance(hash_value)
    if db_path is None:
        return LookupReport()
    return LookupReport(closest=LookupResult(file=str(file), db_path=db_path, distance=distance))


def insert_file(file: PathLike, db: ImageDatabase) -> InsertResult:
    """Report the closest match and leave the decision to the caller."""
    _require_file(file, "insert")
    result = find_closest(file, db)
    logger.info(f"Closest distance: {result.distance}, {result.db_path}")
    return InsertResult(file=str(file), lookup=result, inserted=None)


def _decide(file: Path, result: LookupResult, tolerance: int, auto_deny: int,
            db: ImageDatabase, peek: bool) -> InsertResult:
    if result.distance <= auto_deny:
        logger.info(f"Distance: {result.distance}")
        logger.info("Will skip" if peek else "Skipping")
        return InsertResult(file=str(file), lookup=result, inserted=False)

    if result.distance >= tolerance:
        logger.info(f"Distance: {result.distance}")
        if peek:
            logger.info("Will add")
            return InsertResult(file=None, lookup=result, inserted=True)
        dest = add_image(file, db)
        return InsertResult(file=str(dest), lookup=result, inserted=True)

    logger.info(f"Closest distance: {result.distance}, {result.db_path}", extra={'distance': result.distance})
    return InsertResult(file=str(file), lookup=result, inserted=None)


def insert_directory(directory: PathLike, tolerance: int, db: ImageDatabase,
                     auto_deny: int = DEFAULT_AUTO_DENY, peek: bool = False) -> Iterator[InsertResult]:
    """
    Consider every file in a directory for insertion.

    Files at least ``tolerance`` away from everything stored are added, files
    at most ``auto_deny`` away are skipped, and the rest are yielded
    undecided. With ``peek`` nothing is added.
    """
    if auto_deny >= tolerance:
        raise ActionError("Auto-deny must be less than tolerance.", action="insert-dir")
    source = _require_dir(directory, "insert-dir")

    for file in sorted_files(source):
        logger.info(f"Checking: {display_path(file)}")
        result = find_closest(file, db)
        yield _decide(file, result, tolerance, auto_deny, db, peek)


def remove_image(file: PathLike, db: ImageDatabase) -> bool:
    _require_file(file, "remove")
    return db.remove_image(file)


def use(file: PathLike, db: ImageDatabase) -> UseResult:
    """Mark an image as used, indexing it first if it is not in the tree."""
    _require_file(file, "use")
    path = db.tree_path(file)
    indexed = False
    if not db.tree.contains(path):
        logger.info("Image is not indexed.")
        dest = add_image(file, db)
        path = db.tree_path(dest)
        indexed = True

    newly_used = db.add_usage(path)
    if newly_used:
        logger.info("Marked file as used.")
    else:
        logger.info("File has already been used.")
    return UseResult(path=path, indexed=indexed, newly_used=newly_used)


def use_all(directory: PathLike, db: ImageDatabase) -> List[UseResult]:
    source = _require_dir(directory, "use-all")
    results = []
    for file in sorted_files(source):
        logger.info(f"Using {file}")
        results.append(use(file, db))
    logger.info("Finished processing files.")
    return results


def remove_use(file: PathLike, db: ImageDatabase) -> bool:
    _require_file(file, "remove-use")
    return db.remove_usage(db.tree_path(file))


def show_used(db: ImageDatabase) -> List[str]:
    """Used tree paths in natural order."""
    return storage.sorted_paths(db.used)


def choose(db: ImageDatabase) -> Optional[str]:
    """Pick the first stored image that is not used yet and mark it used."""
    for path in db.tree:
        if path not in db.used:
            db.add_usage(path)
            return path
    return None


def backup(db: ImageDatabase, which: str) -> Path:
    """
    Write a backup of the usage set or the tree next to its data file.

    The backup is named after the full data file name plus ``.bak``. The
    usage backup is plain JSON; the tree backup keeps the gzip format.
    """
    if which == "used":
        output = Path(f"{db.config.usage_file_path}.bak")
        storage.write_json(show_used(db), output)
    elif which == "db":
        output = Path(f"{db.config.database_path}.bak")
        storage.write_tree(db.tree, output)
    else:
        raise ActionError(f"Invalid backup target \"{which}\"", action="backup")
    logger.info(f"Saved to: {display_path(output)}")
    return output


def show_json(db: ImageDatabase) -> str:
    return json.dumps(db.tree.to_dict(), indent=2)
