"""
Error taxonomy for the discovery service.

Per-source errors (FetchError, FetchTimeoutError, StoreWriteError) never
escape a fetch execution: the executor turns them into failure outcomes for
the failure tracker. RegistryError is logged and retried on the next tick.
Only StartupError propagates out of DiscoveryService.run().
"""


class DiscoveryError(Exception):
    """Base class for all discovery errors."""


class FetchError(DiscoveryError):
    """The source was unreachable or returned unusable content."""


class PermanentFetchError(FetchError):
    """A fetch failure that retrying will not fix (404/410, unparseable feed, unsupported type)."""


class FetchTimeoutError(FetchError):
    """The fetch-and-store cycle exceeded its deadline."""


class StoreWriteError(DiscoveryError):
    """The feed store rejected the discovered items."""


class RegistryError(DiscoveryError):
    """The metadata store could not be read or updated."""


class StartupError(DiscoveryError):
    """A required store could not be opened before the scheduling loop started."""
