"""
Real-time Listener Helper

Attaches a store listener whose snapshots and errors both arrive on a
single ``on_update(Result)`` callback:

    - snapshots go through ``transform`` and are delivered as its Result
    - runtime errors become PERMISSION_DENIED, UNAVAILABLE or LISTENER_ERROR
    - a failure to attach becomes SETUP_ERROR and a closed Subscription

Runtime errors leave the subscription attached.
"""

import logging
from typing import Any, Callable

from foodorder.core.errors import TAXONOMY, ErrorCode
from foodorder.core.result import Result
from foodorder.services.store.base import BaseDocumentStore, ListenTarget, Subscription

logger = logging.getLogger(__name__)

OnUpdate = Callable[[Result], None]


def listener_error_result(error: Any, what: str = "updates") -> Result:
    """Envelope for a runtime listener error."""
    code = getattr(error, "code", None)
    if code == "permission-denied":
        return Result.fail("Permission denied. Please contact support.", ErrorCode.PERMISSION_DENIED)
    if code == "unavailable":
        return Result.fail(TAXONOMY[ErrorCode.UNAVAILABLE][0], ErrorCode.UNAVAILABLE, retryable=True)
    return Result.fail(f"Failed to load {what}", ErrorCode.LISTENER_ERROR, retryable=True)


async def listen(
    store: BaseDocumentStore,
    target: ListenTarget,
    transform: Callable[[Any], Result],
    on_update: OnUpdate,
    what: str = "updates",
) -> Subscription:
    """
    Attach a listener to ``target``.

    Args:
        store: Document store to listen on
        target: Query or DocumentRef
        transform: Snapshot -> Result
        on_update: Receives every Result (data or error)
        what: Noun used in log lines and error messages ("orders", ...)

    Returns:
        Live Subscription, or a closed one if attaching failed
    """

    def on_next(snapshot: Any) -> None:
        try:
            result = transform(snapshot)
        except Exception as e:
            logger.exception(f"Failed to process {what} snapshot: {e}")
            result = Result.fail(f"Error processing {what}", ErrorCode.LISTENER_ERROR, retryable=True)
        on_update(result)

    def on_error(error: Any) -> None:
        logger.error(f"{what.capitalize()} listener error: {error!r}")
        on_update(listener_error_result(error, what))

    try:
        return await store.on_snapshot(target, on_next, on_error)
    except Exception as e:
        logger.exception(f"Failed to set up {what} listener: {e}")
        on_update(Result.fail(f"Failed to set up {what} listener", ErrorCode.SETUP_ERROR))
        return Subscription.closed(what)
