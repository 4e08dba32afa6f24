"""
Local file storage for uploads, error reports and asset labels.

Paths stored in the database are relative to ``settings.STORAGE_DIR`` so
the storage root can move without a data migration.
"""

from pathlib import Path

import structlog

from assethub.core.config import settings

logger = structlog.get_logger(__name__)

IMPORTS_DIR = "imports"
REPORTS_DIR = "import-reports"
LABELS_DIR = "labels"


def storage_root() -> Path:
    return Path(settings.STORAGE_DIR)


def resolve(relative_path: str) -> Path:
    """
    Absolute path for a stored relative path.

    Raises ValueError when the path would leave the storage root.
    """
    root = storage_root().resolve()
    target = (root / relative_path).resolve()
    if not target.is_relative_to(root):
        raise ValueError(f"Path escapes the storage root: {relative_path!r}")
    return target


def exists(relative_path: str | None) -> bool:
    return bool(relative_path) and resolve(relative_path).is_file()


def write_bytes(relative_path: str, content: bytes) -> str:
    """Write content under the storage root, creating folders as needed."""
    target = resolve(relative_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    logger.debug("storage_write", path=relative_path, size=len(content))
    return relative_path


def store_upload(stored_name: str, content: bytes) -> str:
    return write_bytes(f"{IMPORTS_DIR}/{stored_name}", content)
