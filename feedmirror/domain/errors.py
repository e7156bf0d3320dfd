"""
Exceptions raised by the mirror.

Only configuration problems and path confinement violations are allowed to
escape a request. Upstream and indexing failures are logged and reported as
"package unavailable" by the mirror service instead.
"""


class FeedMirrorError(Exception):
    """Base class for all feedmirror errors."""


class ConfigurationError(FeedMirrorError, ValueError):
    """The configured storage root (or another setting) is unusable."""


class PathTraversalError(FeedMirrorError, ValueError):
    """A computed artifact path resolves outside the storage root."""

    def __init__(self, path: str, store_root: str):
        super().__init__(f"Path resolves outside store path: {path!r} (store root {store_root!r})")
        self.path = path
        self.store_root = store_root
