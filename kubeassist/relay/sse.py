"""Relay of orchestrator progress events onto a server-sent-event stream."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from kubeassist.cancellation import CancelToken
from kubeassist.relay.events import ProgressEvent, done_event, error_event

logger = logging.getLogger(__name__)


async def relay_events(
    events: AsyncIterator[ProgressEvent],
    token: CancelToken | None = None,
) -> AsyncIterator[dict[str, str]]:
    """
    Yield SSE dicts for *events*, in order, ending with exactly one ``done``.

    Events after the first ``done`` are dropped.  If the source ends without
    one, or fails unexpectedly, ``done`` (preceded by an ``error`` for a
    failure) is appended.  When the consumer goes away, *token* is cancelled
    so in-flight model and cluster calls stop.
    """
    finished = False
    try:
        async for event in events:
            yield event.to_sse()
            if event.terminal:
                finished = True
                break
    except (asyncio.CancelledError, GeneratorExit):
        logger.info("Client went away; cancelling invocation")
        if token is not None:
            token.cancel()
        raise
    except Exception as exc:
        logger.exception("Chat invocation failed")
        yield error_event(f"internal error: {exc}").to_sse()
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    if not finished:
        yield done_event().to_sse()
