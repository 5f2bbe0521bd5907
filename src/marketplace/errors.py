"""
Error taxonomy for the sync core.

The reconciler and the outbox catch these at their own boundary and turn
them into recorded outcomes. Only InvalidPayloadError escapes to callers,
because it signals a programming error at enqueue time.
"""


class MarketplaceError(RuntimeError):
    """Base class for all sync-core errors."""


class NotConfiguredError(MarketplaceError):
    """Raised when a required remote dependency has no configuration."""


class ParseFailureError(MarketplaceError):
    """Raised when a remote snapshot could not be understood."""


class NetworkFailureError(MarketplaceError):
    """Raised when a remote call failed in transport (DNS, timeout, 5xx...)."""


class RemoteRejectedError(MarketplaceError):
    """Raised when the remote side answered but refused the request."""


class InvalidPayloadError(MarketplaceError, ValueError):
    """Raised by Outbox.enqueue when an intent is malformed. Nothing is persisted."""


# Dispatch failures that the outbox retries with backoff.
RETRYABLE_ERRORS = (NetworkFailureError, RemoteRejectedError)
