"""Relay fan-out over NIP-01 websockets.

Connections are opened per operation and closed right after, which gives the
request/response semantics the checkout listener is written against.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any, Callable, Optional

import aiohttp
from pydantic import ValidationError

from ...crypto.events import EventFilter, SignedEvent
from ...domain.errors import PublishTimeout, QueryTransientFailure

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], aiohttp.ClientSession]


class RelayPool:
    """Queries every relay and merges the answers; publishes to every relay.

    A query succeeds when at least one relay answers. A publish succeeds as
    soon as one relay accepts the event with an ``OK`` message.
    """

    def __init__(
        self,
        relay_urls: list[str],
        *,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        if not relay_urls:
            raise ValueError("RelayPool needs at least one relay URL")
        self.relay_urls = list(dict.fromkeys(relay_urls))
        self._session_factory = session_factory or aiohttp.ClientSession

    async def query(
        self, filters: list[EventFilter], *, timeout: float
    ) -> list[SignedEvent]:
        async with self._session_factory() as session:
            results = await asyncio.gather(
                *(
                    asyncio.wait_for(
                        self._query_relay(session, url, filters), timeout=timeout
                    )
                    for url in self.relay_urls
                ),
                return_exceptions=True,
            )

        merged: dict[str, SignedEvent] = {}
        answered = 0
        for url, result in zip(self.relay_urls, results):
            if isinstance(result, BaseException):
                logger.warning("Relay %s query failed: %r", url, result)
                continue
            answered += 1
            for event in result:
                if any(f.matches(event) for f in filters):
                    merged.setdefault(event.id, event)
        if not answered:
            raise QueryTransientFailure("No relay answered the query")
        return sorted(merged.values(), key=lambda e: e.created_at, reverse=True)

    async def _query_relay(
        self,
        session: aiohttp.ClientSession,
        url: str,
        filters: list[EventFilter],
    ) -> list[SignedEvent]:
        sub_id = secrets.token_hex(8)
        events: list[SignedEvent] = []
        async with session.ws_connect(url) as ws:
            await ws.send_str(
                json.dumps(["REQ", sub_id, *(f.to_wire() for f in filters)])
            )
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    break
                frame = self._decode_frame(msg.data)
                if not frame or len(frame) < 2 or frame[1] != sub_id:
                    continue
                if frame[0] == "EVENT" and len(frame) > 2:
                    try:
                        events.append(SignedEvent.model_validate(frame[2]))
                    except ValidationError:
                        logger.debug("Relay %s sent a malformed event", url)
                elif frame[0] in ("EOSE", "CLOSED"):
                    break
            if not ws.closed:
                await ws.send_str(json.dumps(["CLOSE", sub_id]))
        return events

    async def publish(self, event: SignedEvent, *, timeout: float) -> None:
        async with self._session_factory() as session:
            tasks = [
                asyncio.create_task(self._publish_relay(session, url, event))
                for url in self.relay_urls
            ]
            try:
                for next_done in asyncio.as_completed(tasks, timeout=timeout):
                    try:
                        accepted = await next_done
                    except (aiohttp.ClientError, OSError) as e:
                        logger.warning("Publishing %s failed on a relay: %s", event.id, e)
                        continue
                    if accepted:
                        return
            except asyncio.TimeoutError as e:
                raise PublishTimeout(
                    f"No relay acknowledged event {event.id[:8]} within {timeout:g}s"
                ) from e
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
        raise PublishTimeout(f"No relay accepted event {event.id[:8]}")

    async def _publish_relay(
        self, session: aiohttp.ClientSession, url: str, event: SignedEvent
    ) -> bool:
        async with session.ws_connect(url) as ws:
            await ws.send_str(json.dumps(["EVENT", event.model_dump()]))
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    break
                frame = self._decode_frame(msg.data)
                if frame and frame[0] == "OK" and len(frame) > 2 and frame[1] == event.id:
                    if not frame[2]:
                        logger.warning(
                            "Relay %s rejected %s: %s",
                            url,
                            event.id,
                            frame[3] if len(frame) > 3 else "",
                        )
                    return bool(frame[2])
        return False

    @staticmethod
    def _decode_frame(data: str) -> Optional[list[Any]]:
        try:
            frame = json.loads(data)
        except ValueError:
            return None
        return frame if isinstance(frame, list) and frame else None
