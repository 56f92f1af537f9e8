"""Reading labeled text corpora laid out as ``<split>/<category>/<file>``.

The category label of a document is the name of its parent directory and
the split (for example ``20news-bydate-train``) the directory above it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NamedTuple

from .models import Document

logger = logging.getLogger(__name__)


class PathLabel(NamedTuple):
    split: str
    category: str


def label_from_path(path: str | Path) -> PathLabel:
    """Split and category encoded in the two directories above a file."""
    parts = Path(path).parts
    if len(parts) < 3:
        raise ValueError(f"Path {path} has no <split>/<category>/ prefix")
    return PathLabel(split=parts[-3], category=parts[-2])


def read_document(path: Path) -> Document:
    """Read one file as UTF-8, replacing undecodable bytes."""
    text = path.read_text(encoding="utf-8", errors="replace")
    return Document(identifier=str(path), text=text)


def load_corpus(root: str | Path) -> tuple[list[Document], list[str]]:
    """Load every file under ``root/<category>/``.

    Returns:
        ``(documents, labels)`` in path order.

    Raises:
        FileNotFoundError: If ``root`` does not exist.
        ValueError: If ``root`` is not a directory.
    """
    root = Path(root)
    if not root.exists():
        raise FileNotFoundError(f"Corpus directory not found: {root}")
    if not root.is_dir():
        raise ValueError(f"Corpus path is not a directory: {root}")

    documents: list[Document] = []
    labels: list[str] = []
    for path in sorted(p for p in root.glob("*/*") if p.is_file()):
        documents.append(read_document(path))
        labels.append(label_from_path(path).category)

    logger.info("Loaded %d documents in %d categories from %s",
                len(documents), len(set(labels)), root)
    return documents, labels
