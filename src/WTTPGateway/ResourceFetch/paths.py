"""Request path canonicalisation and redirect target resolution.

Paths on a site are always root-relative. ``normalize_path`` turns caller
input into that form without touching already-absolute paths, while
``resolve_redirect`` interprets a redirect ``location`` relative to the path
that produced it, collapsing ``.`` and ``..`` segments so a redirect can
never climb above the site root.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .errors import InvalidPath

__all__ = [
    "normalize_path",
    "resolve_redirect",
    "resolve_segments",
    "looks_like_directory",
    "index_candidates",
]

LOGGER = logging.getLogger(__name__)

_FOREIGN_PREFIXES = ("wttp://",)


def _validate(path: object) -> str:
    if not isinstance(path, str):
        raise InvalidPath(f"Invalid path format: expected str, got {type(path).__name__}")
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in path):
        raise InvalidPath(f"Invalid path format: control characters in {path!r}")
    return path


def normalize_path(path: Optional[str]) -> str:
    """Return ``path`` as a root-relative path.

    Empty or absent paths map to ``/``; absolute paths are returned as-is; a
    ``./`` or ``../`` prefix is stripped (the parent of the root is the root);
    any other relative path is prefixed with ``/``.

    Raises:
        InvalidPath: If ``path`` is not a string or contains control characters.
    """

    if path is None or path == "":
        return "/"
    path = _validate(path)
    if path.startswith("/"):
        return path
    if path.startswith("./"):
        return "/" + path[2:]
    if path.startswith("../"):
        return "/" + path[3:]
    return "/" + path


def resolve_segments(path: str) -> str:
    """Collapse empty, ``.`` and ``..`` segments; ``..`` at the root is a no-op."""

    stack: List[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if stack:
                stack.pop()
            continue
        stack.append(segment)
    return "/" + "/".join(stack)


def _foreign_path(location: str) -> str:
    remainder = location.split("://", 1)[1]
    remainder = remainder.split("?", 1)[0].split("#", 1)[0]
    _, slash, tail = remainder.partition("/")
    return normalize_path(slash + tail if slash else "/")


def resolve_redirect(current_path: str, location: str) -> str:
    """Resolve a redirect ``location`` against ``current_path``.

    Examples:
        >>> resolve_redirect("/a/b/c", "../d")
        '/a/d'
        >>> resolve_redirect("/a/b/", "./d")
        '/a/b/d'
        >>> resolve_redirect("/x", "/y/z")
        '/y/z'
    """

    location = _validate(location)
    if location.startswith("/"):
        return normalize_path(location)
    if location.lower().startswith(_FOREIGN_PREFIXES):
        resolved = _foreign_path(location)
        LOGGER.debug(
            "redirect to foreign site reference; keeping path only",
            extra={"stage": "redirect", "path": resolved},
        )
        return resolved

    current_path = normalize_path(current_path)
    base_dir = current_path[: current_path.rfind("/") + 1]
    return resolve_segments(base_dir + location)


def looks_like_directory(path: str) -> bool:
    """A path is directory-like when it ends with ``/`` or has no ``.`` anywhere."""

    return path.endswith("/") or "." not in path


def index_candidates(path: str, names: Iterable[str]) -> List[str]:
    """Build the ordered directory-index probe paths for ``path``."""

    base = path if path.endswith("/") else path + "/"
    return [normalize_path(base + name) for name in names]
