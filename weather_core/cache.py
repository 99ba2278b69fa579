from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from .entities import CacheKey


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FALLBACK_EXPIRY = timedelta(minutes=10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 1123 HTTP date, returning ``None`` when it is missing or malformed."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_http_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


@dataclass
class CacheEntry(Generic[T]):
    result: T
    expires: datetime
    last_modified: Optional[str] = None


class ConditionalCache(Generic[T]):
    """Per-adapter cache of parsed provider responses honouring HTTP expiry.

    Entries are never deleted: a stale entry still supplies its Last-Modified
    value for the next conditional request and can be revalidated by a
    ``304 Not Modified`` without re-parsing anything.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        fallback_expiry: timedelta = DEFAULT_FALLBACK_EXPIRY,
    ) -> None:
        self._clock = clock
        self.fallback_expiry = fallback_expiry
        self._entries: Dict[CacheKey, CacheEntry[T]] = {}
        self.hits = 0
        self.misses = 0

    def lookup(self, key: CacheKey) -> Tuple[Optional[T], Optional[str]]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None, None
        if self._clock() < entry.expires:
            self.hits += 1
            return entry.result, entry.last_modified
        self.misses += 1
        return None, entry.last_modified

    def entry(self, key: CacheKey) -> Optional[CacheEntry[T]]:
        """Return the stored entry regardless of expiry."""
        return self._entries.get(key)

    def store(
        self,
        key: CacheKey,
        result: T,
        expires_header: Optional[str],
        last_modified_header: Optional[str],
    ) -> CacheEntry[T]:
        expires = parse_http_date(expires_header)
        if expires is None:
            logger.warning("failed to parse Expires header %r, caching for %s", expires_header, self.fallback_expiry)
            expires = self._clock() + self.fallback_expiry
        entry = CacheEntry(result=result, expires=expires, last_modified=last_modified_header or None)
        self._entries[key] = entry
        return entry

    def revalidate(self, key: CacheKey, expires_header: Optional[str]) -> Optional[CacheEntry[T]]:
        """Extend an existing entry after a ``304 Not Modified`` response.

        The cached payload and its Last-Modified value are kept as they are;
        only the expiry moves. Without a usable Expires header the entry keeps
        its previous expiry or the fallback window, whichever ends later.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires = parse_http_date(expires_header)
        if expires is None:
            expires = max(entry.expires, self._clock() + self.fallback_expiry)
        entry.expires = expires
        return entry

    def stats(self) -> Dict[str, Any]:
        return {"hits": self.hits, "misses": self.misses, "keys": len(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "CacheEntry",
    "ConditionalCache",
    "DEFAULT_FALLBACK_EXPIRY",
    "format_http_date",
    "parse_http_date",
]
