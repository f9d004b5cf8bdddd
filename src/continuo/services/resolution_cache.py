"""Track identity -> playable id cache with durable JSON persistence.

Entries produced by a provider-confirmed resolution are written to disk;
fallback entries live only in memory for the current session. Loading is
tolerant of missing or corrupt files, which degrade to an empty cache.
"""

from __future__ import annotations

import json
import logging
import math
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from continuo.models import is_valid_playable_id

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 2
DEFAULT_TTL_S = 30 * 24 * 3600.0


@dataclass(frozen=True)
class ResolutionCacheEntry:
    identity: str
    playable_id: str
    resolved_at: float
    is_fallback: bool = False


@dataclass(frozen=True)
class CacheStats:
    entries: int
    durable: int
    fallback: int
    hits: int
    misses: int
    path: Path | None


class ResolutionCache:
    """In-memory resolution map mirrored to `path` for durable entries."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, ResolutionCacheEntry] = {}
        self._hits = 0
        self._misses = 0
        if path is not None:
            self._entries = _load_entries(path)

    @property
    def path(self) -> Path | None:
        return self._path

    def get(self, identity: str) -> ResolutionCacheEntry | None:
        """Return a live entry for `identity`; expired entries are evicted."""
        entry = self._entries.get(identity)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() - entry.resolved_at >= self._ttl_s:
            del self._entries[identity]
            self._misses += 1
            if not entry.is_fallback:
                self._save()
            return None
        self._hits += 1
        return entry

    def put(
        self, identity: str, playable_id: str, *, is_fallback: bool = False
    ) -> ResolutionCacheEntry:
        entry = ResolutionCacheEntry(
            identity=identity,
            playable_id=playable_id,
            resolved_at=self._clock(),
            is_fallback=is_fallback,
        )
        previous = self._entries.get(identity)
        self._entries[identity] = entry
        # A fallback overwriting a durable entry must also drop it from disk.
        if not is_fallback or (previous is not None and not previous.is_fallback):
            self._save()
        return entry

    def discard(self, identity: str) -> None:
        entry = self._entries.pop(identity, None)
        if entry is not None and not entry.is_fallback:
            self._save()

    def clear(self) -> int:
        """Drop every entry, persisting the empty cache; returns count removed."""
        count = len(self._entries)
        self._entries.clear()
        self._save()
        return count

    def stats(self) -> CacheStats:
        fallback = sum(1 for entry in self._entries.values() if entry.is_fallback)
        return CacheStats(
            entries=len(self._entries),
            durable=len(self._entries) - fallback,
            fallback=fallback,
            hits=self._hits,
            misses=self._misses,
            path=self._path,
        )

    def entries(self) -> list[ResolutionCacheEntry]:
        return sorted(self._entries.values(), key=lambda entry: entry.resolved_at)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def _save(self) -> None:
        if self._path is None:
            return
        durable = [entry for entry in self._entries.values() if not entry.is_fallback]
        try:
            save_entries(self._path, durable)
        except OSError as exc:
            logger.warning("Failed to persist resolution cache %s: %s", self._path, exc)


def _coerce_entry(identity: Any, data: Any) -> ResolutionCacheEntry | None:
    if not isinstance(identity, str) or not identity or not isinstance(data, dict):
        return None
    playable_id = data.get("playable_id")
    if not is_valid_playable_id(playable_id):
        return None
    resolved_at = data.get("resolved_at")
    if isinstance(resolved_at, bool) or not isinstance(resolved_at, (int, float)):
        return None
    if not math.isfinite(float(resolved_at)):
        return None
    # Fallback entries never belong on disk; ignore any that slipped in.
    if data.get("is_fallback") is True:
        return None
    return ResolutionCacheEntry(
        identity=identity,
        playable_id=playable_id,
        resolved_at=float(resolved_at),
        is_fallback=False,
    )


def _load_entries(path: Path) -> dict[str, ResolutionCacheEntry]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Failed to read resolution cache %s: %s; starting empty.", path, exc)
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Resolution cache at %s is invalid JSON; starting empty.", path)
        return {}
    if not isinstance(data, dict) or not isinstance(data.get("entries"), dict):
        logger.warning("Resolution cache at %s has an unknown layout; starting empty.", path)
        return {}
    if data.get("version") != CACHE_FORMAT_VERSION:
        logger.info(
            "Resolution cache version %r != %d; starting empty.",
            data.get("version"),
            CACHE_FORMAT_VERSION,
        )
        return {}
    entries: dict[str, ResolutionCacheEntry] = {}
    for identity, value in data["entries"].items():
        entry = _coerce_entry(identity, value)
        if entry is not None:
            entries[entry.identity] = entry
    logger.debug("Loaded %d resolution cache entries from %s", len(entries), path)
    return entries


def save_entries(path: Path, entries: list[ResolutionCacheEntry]) -> None:
    """Persist durable entries atomically via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(
        {
            "version": CACHE_FORMAT_VERSION,
            "entries": {
                entry.identity: {
                    "playable_id": entry.playable_id,
                    "resolved_at": entry.resolved_at,
                }
                for entry in entries
                if not entry.is_fallback
            },
        },
        indent=2,
        sort_keys=True,
    )
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_text(payload, encoding="utf-8")
            try:
                tmp_path.replace(path)
                return
            except OSError as exc:
                if not _is_retryable_replace_error(exc) or attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()


def _is_retryable_replace_error(exc: OSError) -> bool:
    """Return whether an atomic replace failure is likely transient (Windows locks)."""
    winerror = getattr(exc, "winerror", None)
    if winerror in {32, 5, 2}:
        return True
    errno = getattr(exc, "errno", None)
    if errno in {13, 16}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text
