"""Domain service mapping client object keys onto paths under the storage root."""

from __future__ import annotations

import posixpath
from pathlib import Path

from domain.exceptions import InvalidKeyError

KEY_SEPARATOR = "/"
PARENT_SEGMENT = ".."

# Reserved for in-flight writes; a key may never name one of these files.
STAGING_PREFIX = ".tmp-"


def key_segments(key: str) -> list[str]:
    """Split a key into its path segments, treating backslashes as separators too."""
    return key.replace("\\", KEY_SEPARATOR).split(KEY_SEPARATOR)


def has_parent_segment(key: str) -> bool:
    return PARENT_SEGMENT in key_segments(key)


def map_key_to_path(root: Path, key: str) -> Path:
    """Translate an object key into an absolute path strictly inside ``root``.

    The mapping is purely lexical: nothing on disk is read or created, so an
    unsafe key is rejected before any directory is looked at for it.

    Args:
        root: Absolute storage root directory
        key: Object key as supplied by the client, possibly with one leading
            separator and ``/``-separated virtual sub-paths

    Returns:
        The absolute path ``root/normalized_key``

    Raises:
        InvalidKeyError: If the key is empty, contains a ``..`` segment, names
            a staging file or does not resolve strictly inside ``root``

    """
    if key.startswith(KEY_SEPARATOR):
        key = key[1:]
    if not key:
        msg = "object key is empty"
        raise InvalidKeyError(msg)
    if "\x00" in key:
        msg = "object key contains a NUL byte"
        raise InvalidKeyError(msg)
    # Checked on the raw key: normalization alone would silently fold ``a/../b``.
    if has_parent_segment(key):
        msg = f"object key contains a '{PARENT_SEGMENT}' segment"
        raise InvalidKeyError(msg)

    normalized = posixpath.normpath(key)
    if normalized in ("", ".") or normalized.startswith(KEY_SEPARATOR):
        msg = "object key does not name a location inside the storage root"
        raise InvalidKeyError(msg)
    if any(segment.startswith(STAGING_PREFIX) for segment in normalized.split(KEY_SEPARATOR)):
        msg = f"object key segments may not start with '{STAGING_PREFIX}'"
        raise InvalidKeyError(msg)

    base = Path(posixpath.normpath(root.as_posix()))
    candidate = Path(posixpath.normpath(posixpath.join(base.as_posix(), normalized)))
    if candidate == base or not candidate.is_relative_to(base):
        msg = "object key resolves outside the storage root"
        raise InvalidKeyError(msg)

    return candidate
