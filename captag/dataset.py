"""
Dataset import and export.

- Purpose: pair images with caption files on the way in, and write an
  image+caption zip archive on the way out.
- Pairing rule (both directions): an image's caption lives in a text file
  with the same base name and a ``.txt`` extension.
- Side effects: import adds items to the store; export writes one zip file.
"""

from __future__ import annotations

import logging
import mimetypes
import zipfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path, PurePath
from typing import Iterable, Optional

from .engine import EngineState
from .errors import MissingInputError, StoreError
from .protocol import CollectionStoreProtocol

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif"}
CAPTION_EXTENSION = ".txt"


def caption_name(filename: str) -> str:
    """Name of the caption file that belongs to an image file."""
    return PurePath(filename).stem + CAPTION_EXTENSION


def is_image(path: Path) -> bool:
    if path.suffix.lower() in IMAGE_EXTENSIONS:
        return True
    guessed, _ = mimetypes.guess_type(path.name)
    return bool(guessed and guessed.startswith("image/"))


def default_archive_name(today: Optional[date] = None) -> str:
    return f"captioned_dataset_{(today or date.today()).isoformat()}.zip"


@dataclass
class CollectedFiles:
    """Images to import and the captions found next to them, keyed by stem."""
    images: list[Path] = field(default_factory=list)
    captions: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    def caption_for(self, image: Path) -> str:
        return self.captions.get(image.stem, "")


@dataclass
class ImportSummary:
    added: int = 0
    captioned: int = 0
    skipped: list[str] = field(default_factory=list)


def _list_directory_files(directory: Path) -> list[Path]:
    """List regular files in a directory, sorted by name.

    Skips symlinks, subdirectories, and hidden files (names starting with '.').
    """
    files = []
    for entry in sorted(directory.iterdir()):
        if entry.name.startswith("."):
            continue
        if entry.is_symlink() or entry.is_dir():
            continue
        files.append(entry)
    return files


def collect_files(paths: Iterable[Path]) -> CollectedFiles:
    """Expand files and directories into images plus their caption texts."""
    collected = CollectedFiles()
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Not found: {path}")
        candidates = _list_directory_files(path) if path.is_dir() else [path]
        for candidate in candidates:
            if candidate.suffix.lower() == CAPTION_EXTENSION:
                try:
                    collected.captions[candidate.stem] = candidate.read_text(encoding="utf-8").strip()
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Skipping caption file %s: %s", candidate, e)
                    collected.skipped.append(candidate.name)
            elif is_image(candidate):
                collected.images.append(candidate)
            else:
                logger.debug("Skipping non-image file %s", candidate)
    return collected


def import_paths(state: EngineState, paths: Iterable[Path]) -> ImportSummary:
    """
    Add images (and their paired captions) to the collection.

    Raises:
        MissingInputError: if no image files were found
    """
    collected = collect_files(paths)
    if not collected.images:
        raise MissingInputError("No images were found to import")

    summary = ImportSummary(skipped=list(collected.skipped))
    files: list[tuple[str, bytes, Optional[str], str]] = []
    for image in collected.images:
        try:
            data = image.read_bytes()
        except OSError as e:
            logger.warning("Skipping %s: %s", image, e)
            summary.skipped.append(image.name)
            continue
        content_type, _ = mimetypes.guess_type(image.name)
        files.append((image.name, data, content_type, collected.caption_for(image)))

    # Remote stores take the whole batch as chunked multipart uploads
    upload = getattr(state.store, "upload", None)
    if upload is not None:
        reported = upload(files)
        summary.added = reported.count
        summary.captioned = reported.captioned
    else:
        for name, data, content_type, caption in files:
            state.store.add(name, data, caption=caption, content_type=content_type)
        summary.added = len(files)
        summary.captioned = sum(1 for *_, caption in files if caption)

    state.refresh()
    logger.info(
        "Imported %d images (%d with captions, %d skipped)",
        summary.added, summary.captioned, len(summary.skipped),
    )
    return summary


def _unique_name(filename: str, taken: set[str]) -> str:
    """Suffix the stem (``_1``, ``_2``...) until neither the image nor its caption clashes."""
    candidate = PurePath(filename)
    counter = 1
    name = candidate.name
    while name in taken or caption_name(name) in taken:
        name = f"{candidate.stem}_{counter}{candidate.suffix}"
        counter += 1
    return name


def export_archive(store: CollectionStoreProtocol, destination: Path) -> Path:
    """
    Write every image and its non-blank caption into a zip archive.

    If ``destination`` is a directory the archive gets the default dated
    name inside it.

    Raises:
        MissingInputError: if the collection is empty
    """
    items = store.get_all()
    if not items:
        raise MissingInputError("No images to export")

    destination = Path(destination)
    if destination.is_dir():
        destination = destination / default_archive_name()
    destination.parent.mkdir(parents=True, exist_ok=True)

    exported = 0
    taken: set[str] = set()
    with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for item in items:
            try:
                data = store.read_bytes(item.id)
            except (StoreError, KeyError) as e:
                logger.warning("Skipping %s in export: %s", item.filename, e)
                continue
            name = _unique_name(item.filename or item.id, taken)
            archive.writestr(name, data)
            # Reserve the caption name even when blank so pairing stays unambiguous
            taken.update((name, caption_name(name)))
            if item.has_caption:
                archive.writestr(caption_name(name), item.caption)
            exported += 1

    logger.info("Exported %d of %d images to %s", exported, len(items), destination)
    return destination
