"""User-friendly error messages and safe tool wrapper."""

import logging

from productcache.auth import ScopeError
from productcache.cache.errors import InvalidPolicyConfiguration, ItemTooLarge, KeyBusy
from productcache.clients.resilience import (
    AuthError,
    CircuitOpenError,
    PermanentBackingStoreError,
    SchemaChangeError,
    TransientBackingStoreError,
)

logger = logging.getLogger(__name__)


def get_user_message(error: Exception, context: dict | None = None) -> str:
    """Map an exception to a user-friendly message.

    Args:
        error: The exception to translate.
        context: Optional dict with extra info (e.g. {"product": "p3"}).

    Returns:
        A human-readable error message.
    """
    product = (context or {}).get("product", "the product")

    if isinstance(error, ScopeError):
        return (
            "This access token can only read the cache. "
            "Use the operator token to change products or cache state."
        )
    if isinstance(error, KeyBusy):
        return f"{product} is already being updated. Please try again in a moment."
    if isinstance(error, ItemTooLarge):
        return (
            f"{product} is {error.size_bytes} bytes, larger than the whole "
            f"cache ({error.capacity_bytes} bytes), so it cannot be cached."
        )
    if isinstance(error, InvalidPolicyConfiguration):
        return f"The cache configuration is invalid: {error}"
    if isinstance(error, AuthError):
        return (
            "The product service rejected our credentials. "
            "Check BACKING_STORE_TOKEN and restart the server."
        )
    if isinstance(error, SchemaChangeError):
        return (
            "The product service returned data in an unexpected format. "
            "Please try again later."
        )
    if isinstance(error, CircuitOpenError):
        return (
            "The product service is temporarily unavailable. "
            "Please try again in a few minutes."
        )
    if isinstance(error, TransientBackingStoreError):
        return (
            f"There was a temporary issue loading {product} from the product service. "
            "Please try again shortly."
        )
    if isinstance(error, PermanentBackingStoreError):
        return f"Could not complete the request for {product}. {error}"
    return "Something went wrong. Please try again or contact support."


async def safe_tool_wrapper(
    func,  # type: ignore[no-untyped-def]
    *args: object,
    context: dict | None = None,
    **kwargs: object,
) -> str:
    """Call an async function, catching errors and returning friendly messages.

    Args:
        func: Async callable to invoke.
        *args: Positional arguments for *func*.
        context: Optional context dict for error messages.
        **kwargs: Keyword arguments for *func*.

    Returns:
        The function's return value on success, or a user-friendly error string.
    """
    try:
        return await func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Tool error in %s", func.__name__)
        return get_user_message(exc, context)
