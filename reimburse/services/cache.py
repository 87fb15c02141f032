"""In-process cache of rendered pages with path-based revalidation."""

from threading import Lock

from reimburse.core.utils import get_logger

logger = get_logger("reimburse.cache")


class PageCache:
    """Rendered HTML keyed by route path; mutating operations mark paths stale."""

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._pages: dict[str, str] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        """Number of cached pages."""
        with self._lock:
            return len(self._pages)

    def get(self, path: str) -> str | None:
        """Return the cached page for a path, if any."""
        with self._lock:
            return self._pages.get(path)

    def set(self, path: str, html: str) -> None:
        """Store a rendered page."""
        with self._lock:
            self._pages[path] = html

    def revalidate_path(self, path: str) -> None:
        """Drop every cached variant of a path so the next request renders it again."""
        with self._lock:
            stale = [key for key in self._pages if key == path or key.startswith(f"{path}?")]
            for key in stale:
                del self._pages[key]
        logger.debug(f"Revalidated {path}: dropped {len(stale)} page(s)")

    def clear(self) -> None:
        """Drop every cached page."""
        with self._lock:
            self._pages.clear()


page_cache = PageCache()


def revalidate_path(path: str) -> None:
    """Mark a route's cached response stale."""
    page_cache.revalidate_path(path)
