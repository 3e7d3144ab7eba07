"""Hash sources for inline content and static files."""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from cspolicy.policy.errors import InvalidArgumentError
from cspolicy.policy.policy import HashAlgorithms

logger = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class _FileEntry:
    mtime_ns: int
    size: int
    hashes: tuple[str, ...]


def _hashers(algorithms: HashAlgorithms) -> list[tuple[str, Any]]:
    if not isinstance(algorithms, HashAlgorithms) or not algorithms.members():
        raise InvalidArgumentError("at least one hash algorithm is required")
    return [(alg.prefix, hashlib.new(alg.name.lower())) for alg in algorithms.members()]


def _encode(prefix: str, digest: bytes) -> str:
    return prefix + base64.b64encode(digest).decode("ascii")


class HashProvider:
    """Compute and memoize ``sha256-``/``sha384-``/``sha512-`` prefixed hashes.

    Content hashes are cached by key for the process lifetime. File hashes
    are cached by path and recomputed when the file's mtime or size changes.
    Relative paths resolve under *web_root*; *path_base* is the mount prefix
    of the app, stripped when the path as given does not exist.
    """

    def __init__(self, web_root: str | Path = ".", path_base: str = "") -> None:
        self._web_root = Path(web_root)
        self._path_base = path_base.rstrip("/")
        self._content_cache: dict[tuple[str, HashAlgorithms], tuple[str, ...]] = {}
        self._file_cache: dict[tuple[str, HashAlgorithms], _FileEntry] = {}

    def get_content_hashes(self, cache_key: str, content: str, algorithms: HashAlgorithms) -> list[str]:
        """Hashes of the UTF-8 encoding of *content*, one per algorithm."""
        if cache_key is None:
            raise InvalidArgumentError("cache_key must not be None")
        if content is None:
            raise InvalidArgumentError("content must not be None")

        key = (cache_key, algorithms)
        cached = self._content_cache.get(key)
        if cached is None:
            data = content.encode("utf-8")
            hashes = []
            for prefix, hasher in _hashers(algorithms):
                hasher.update(data)
                hashes.append(_encode(prefix, hasher.digest()))
            cached = self._content_cache[key] = tuple(hashes)
        return list(cached)

    def get_file_hashes(self, path: str, algorithms: HashAlgorithms) -> list[str]:
        """Hashes of the file at *path*; empty when the file does not exist."""
        if not path:
            raise InvalidArgumentError("path must be a non-empty string")

        key = (path, algorithms)
        resolved = self._resolve(path)
        if resolved is None:
            return self._file_not_found(path, key)

        try:
            stat = resolved.stat()
            entry = self._file_cache.get(key)
            if entry is not None and entry.mtime_ns == stat.st_mtime_ns and entry.size == stat.st_size:
                return list(entry.hashes)

            hashers = _hashers(algorithms)
            with open(resolved, "rb") as f:
                while chunk := f.read(_CHUNK_SIZE):
                    for _, hasher in hashers:
                        hasher.update(chunk)
        except OSError:
            # Removed or made unreadable after it was resolved.
            return self._file_not_found(path, key)

        hashes = tuple(_encode(prefix, hasher.digest()) for prefix, hasher in hashers)
        self._file_cache[key] = _FileEntry(stat.st_mtime_ns, stat.st_size, hashes)
        logger.debug("csp_file_hashed", path=path, algorithms=len(hashes))
        return list(hashes)

    def invalidate(self, path: str | None = None) -> None:
        """Drop cached file hashes for *path*, or every cached hash."""
        if path is None:
            self._content_cache.clear()
            self._file_cache.clear()
            return
        for key in [k for k in self._file_cache if k[0] == path]:
            del self._file_cache[key]

    def _file_not_found(self, path: str, key: tuple[str, HashAlgorithms]) -> list[str]:
        logger.warning("csp_hash_file_not_found", path=path, web_root=str(self._web_root))
        self._file_cache.pop(key, None)
        return []

    def _resolve(self, path: str) -> Path | None:
        candidates = [path]
        if self._path_base and path.lower().startswith(self._path_base.lower()):
            candidates.append(path[len(self._path_base):])
        root = self._web_root.resolve()
        for candidate in candidates:
            full = (root / candidate.lstrip("/")).resolve()
            # Never hash files outside the web root (e.g. "../secrets").
            if not full.is_relative_to(root):
                continue
            if full.is_file():
                return full
        return None
