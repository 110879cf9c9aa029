"""Exception types raised inside the offline cache layer."""


class OfflineCacheError(RuntimeError):
    """Base class for errors of the offline cache layer."""


class NetworkError(OfflineCacheError):
    """The network could not deliver a response (transport-level failure)."""


class PrefetchError(OfflineCacheError):
    """An area prefetch job failed before its download phase."""


class StyleResolutionError(PrefetchError):
    """A style reference could not be turned into a fetchable URL."""
