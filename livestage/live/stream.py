"""Server-Sent Events rendition of a connected live view."""
import json
import logging
import time
from datetime import datetime, date

logger = logging.getLogger(__name__)

# Client reconnect delay in milliseconds
RETRY_MS = 2000


def _json_default(obj):
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def sse_event(event, data):
    """Format one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data, default=_json_default)}\n\n"


def sse_comment(text):
    return f": {text}\n\n"


def stream_view(view, heartbeat_seconds=15, poll_timeout=1.0, clock=time.monotonic):
    """
    Yield the view's current state and UI flags, then every change as it is
    broadcast, with a heartbeat comment whenever the stream has been quiet
    for `heartbeat_seconds`. The view is disconnected when the client goes away.

    The view must already be mounted with connected=True.
    """
    try:
        yield f"retry: {RETRY_MS}\n\n"
        yield sse_event('state', view.state)
        yield sse_event('ui', view.ui)
        last_sent = clock()

        while view.connected:
            for change in view.poll(timeout=poll_timeout):
                yield sse_event(change, view.state if change == 'state' else view.ui)
                last_sent = clock()

            if clock() - last_sent >= heartbeat_seconds:
                yield sse_comment('heartbeat')
                last_sent = clock()
    finally:
        logger.debug(f"[LIVE] Stream closed for {view.role} product_set={view.product_set_id}")
        view.disconnect()
