"""
Shared helpers for the narrative consistency engine.

Consolidates the small utilities every component needs: atomic JSON
persistence for universe documents, canonical hashing of content payloads,
and the text normalisation used when comparing stated attributes against
established ones.

All JSON writes use atomic temp-file-then-os.replace() so a crash mid-write
never leaves a truncated universe document behind.
"""

import contextlib
import hashlib
import json
import logging
import os
import re
import tempfile
import unicodedata
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Load a universe document, or return *default* if it is unreadable."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return default
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        logger.warning("Unreadable universe document %s: %s", path, exc)
        return default


def safe_write_json(path, data, *, indent=2):
    """Write a universe document via a sibling temp file and ``os.replace``."""
    path = str(path)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, staging = tempfile.mkstemp(dir=directory, prefix=".universe-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(staging, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(staging)
        raise


# ---------------------------------------------------------------------------
# Hashing and identifiers
# ---------------------------------------------------------------------------

def canonical_json(data) -> str:
    """Serialise *data* with sorted keys so equal payloads hash equally."""
    return json.dumps(data, sort_keys=True, default=str, ensure_ascii=False)


def content_hash(tab_type: str, content) -> str:
    """Return a stable SHA-256 digest of a tab type plus content payload."""
    raw = f"{tab_type}\x1f{canonical_json(content)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def short_digest(*parts) -> str:
    """Return a 12-character digest of *parts* for deterministic ids."""
    raw = "\x1f".join(canonical_json(p) for p in parts)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]


def slugify(text: str) -> str:
    """Convert a human-readable name to a filesystem-friendly slug.

    Examples:
        "Harbor Town Saga"  -> "harbor-town-saga"
        "Mara's Story"      -> "maras-story"
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower().replace("'", "")
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return re.sub(r"-+", "-", text).strip("-")


def now_utc() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Text normalisation
# ---------------------------------------------------------------------------

def normalize_text(value) -> str:
    """Lowercase, trim and collapse whitespace for attribute comparison.

    ``None`` normalises to the empty string.
    """
    if value is None:
        return ""
    text = str(value).strip().lower()
    return re.sub(r"\s+", " ", text)


def texts_conflict(stated, established) -> bool:
    """Return True when both values are present and differ after normalising.

    A missing value on either side is never a conflict: absence of a
    statement is not a contradiction.
    """
    a = normalize_text(stated)
    b = normalize_text(established)
    return bool(a) and bool(b) and a != b


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    return re.findall(r"[a-z0-9']+", (text or "").lower())
