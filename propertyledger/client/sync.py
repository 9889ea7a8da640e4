"""Client side of the real-time receipt channel."""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from pydantic import ValidationError
from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import WebSocketException

from propertyledger.client.queue import ReceiptQueueStore

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def backoff_delay(attempt: int, maximum: float = MAX_BACKOFF_SECONDS) -> float:
    """Delay before reconnect attempt ``attempt`` (0-based): 1, 2, 4 ... capped."""
    return min(INITIAL_BACKOFF_SECONDS * (2**attempt), maximum)


class ReceiptSyncChannel:
    """Keeps a ReceiptQueueStore in step with the account's event stream.

    Delivery is at-least-once; the store absorbs duplicates. The server does
    not replay missed events, so every successful reconnection reloads the
    queue snapshot instead.
    """

    def __init__(
        self,
        url: str,
        store: ReceiptQueueStore,
        *,
        connect: Callable[[str], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_state_change: Callable[[ConnectionState], None] | None = None,
    ) -> None:
        self.url = url
        self.store = store
        self._connect = connect or websocket_connect
        self._sleep = sleep
        self._on_state_change = on_state_change
        self._task: asyncio.Task | None = None
        self._stopped = False
        self.state = ConnectionState.DISCONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        logger.debug(f"Receipt channel {self.state} -> {state}")
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)

    def handle_message(self, message: str | bytes | dict) -> dict | None:
        """Apply one server frame to the store.

        Returns:
            A reply frame to send back (``pong`` for ``ping``), else None.
        """
        if not isinstance(message, dict):
            try:
                message = json.loads(message)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring non-JSON frame: {message!r}")
                return None

        if not isinstance(message, dict):
            logger.warning(f"Ignoring frame that is not an object: {message!r}")
            return None

        event_type = message.get("type")
        data = message.get("data") or {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring {event_type!r} frame with malformed data: {data!r}")
            return None

        if event_type == "ping":
            return {"type": "pong"}

        if event_type == "receipt_added":
            try:
                self.store.add_from_realtime(data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed receipt_added event: {e}")
        elif event_type == "receipt_removed":
            receipt_id = data.get("receipt_id")
            if receipt_id:
                self.store.remove(receipt_id)
        else:
            logger.debug(f"Ignoring event type {event_type!r}")
        return None

    async def run(self) -> None:
        """Connect and process events until ``stop`` is called.

        Connection failures are retried with exponential backoff and never
        raised to the caller.
        """
        self._stopped = False
        attempt = 0
        has_connected = False

        try:
            while not self._stopped:
                self._set_state(
                    ConnectionState.RECONNECTING if has_connected else ConnectionState.CONNECTING
                )
                try:
                    async with self._connect(self.url) as websocket:
                        self._set_state(ConnectionState.CONNECTED)
                        attempt = 0
                        if has_connected:
                            logger.info("Receipt channel reconnected, reloading queue")
                            await self.store.load()
                        has_connected = True

                        async for raw in websocket:
                            reply = self.handle_message(raw)
                            if reply is not None:
                                await websocket.send(json.dumps(reply))
                except (WebSocketException, OSError) as e:
                    logger.warning(f"Receipt channel connection lost: {e}")

                if self._stopped:
                    break

                delay = backoff_delay(attempt)
                attempt += 1
                self._set_state(ConnectionState.RECONNECTING)
                logger.info(f"Reconnecting receipt channel in {delay:.0f}s")
                await self._sleep(delay)
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    def start(self) -> asyncio.Task:
        """Run the channel in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._set_state(ConnectionState.DISCONNECTED)
