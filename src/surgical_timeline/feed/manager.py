# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Connection Manager: one logical connection to the telemetry broker.

Owns connect/disconnect, topic handler registration, publishing, and the
reconnection policy. Inbound payloads are decoded from JSON here; decode
failures are reported on the ``error`` channel and never reach handlers.

Reconnection policy:
    - An unsolicited disconnect starts automatic reconnection, one attempt
      every ``reconnect_period_seconds``.
    - After ``max_reconnect_attempts`` consecutive failures the manager goes
      quiet: it stops trying, raises one terminal error notice, stops
      logging, and reports ``disabled``.
    - Quiet mode ends after ``quiet_cooldown_seconds`` or on an explicit
      ``re_enable()``; reconnection then resumes with a fresh budget.

Only the first ``connect()`` call raises on failure. Failures during
automatic reconnection surface through ``error`` listeners.

Design:
    - DI-friendly: accepts any ``ProtocolFeedTransport``.
    - Single-threaded: all state changes and handler calls run on the event
      loop, so handlers observe messages sequentially in arrival order.
    - Handler registrations survive reconnects; every topic with a live
      handler is re-subscribed on each (re)connect.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable, Coroutine
from typing import Any
from uuid import uuid4

from surgical_timeline.config import TimelineSettings
from surgical_timeline.enums import ConnectionEvent, ConnectionStatus
from surgical_timeline.errors import (
    FeedConnectionError,
    FeedParseError,
    SurgicalTimelineError,
)
from surgical_timeline.feed.models import ConnectionNotice, ConnectionSnapshot
from surgical_timeline.feed.protocols import ProtocolFeedTransport

logger = logging.getLogger(__name__)

TopicHandler = Callable[[str, Any], None]
"""Receives ``(topic, decoded_message)``."""

ConnectionListener = Callable[[ConnectionNotice], None]

# Failures beyond this count are no longer logged individually.
_LOGGED_FAILURES = 2


class ConnectionManager:
    """Single logical connection to the telemetry feed.

    Usage:
        manager = ConnectionManager(MqttFeedTransport(), settings)
        manager.on(ConnectionEvent.CONNECT, on_connect)
        await manager.connect("ws://broker:9001")
        manager.subscribe(SurgeryTopic.STAGE, handle_stage)
        ...
        await manager.disconnect()

    Args:
        transport: Broker transport implementation.
        settings: Timeouts and retry policy. Defaults to environment settings.
        client_id: Fixed client id; generated from the configured prefix when
            omitted and kept stable across reconnects.
    """

    def __init__(
        self,
        transport: ProtocolFeedTransport,
        settings: TimelineSettings | None = None,
        *,
        client_id: str | None = None,
    ) -> None:
        self._transport = transport
        self._settings = settings or TimelineSettings()
        self._client_id = client_id or f"{self._settings.client_id_prefix}_{uuid4().hex[:12]}"

        self._status = ConnectionStatus.DISCONNECTED
        self._endpoint: str | None = None
        self._stopped = True
        self._quiet = False
        self._failed_attempts = 0
        self._last_error: str | None = None

        self._handlers: dict[str, set[TopicHandler]] = {}
        self._feed_topics: set[str] = set()
        self._listeners: dict[ConnectionEvent, list[ConnectionListener]] = {
            event: [] for event in ConnectionEvent
        }

        self._connecting: asyncio.Future[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._cooldown_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()

        self._transport.bind(self._on_transport_message, self._on_transport_lost)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    def status(self) -> ConnectionSnapshot:
        """Point-in-time connection snapshot for the presentation layer."""
        return ConnectionSnapshot(
            connected=self.is_connected,
            status=self._status,
            client_id=self._client_id,
            quiet=self._quiet,
            failed_attempts=self._failed_attempts,
            last_error=self._last_error,
        )

    def topics(self) -> dict[str, int]:
        """Registered topics mapped to their handler count."""
        return {topic: len(handlers) for topic, handlers in self._handlers.items()}

    # ------------------------------------------------------------------
    # Lifecycle listeners
    # ------------------------------------------------------------------

    def on(self, event: ConnectionEvent, listener: ConnectionListener) -> None:
        if listener not in self._listeners[event]:
            self._listeners[event].append(listener)

    def off(self, event: ConnectionEvent, listener: ConnectionListener) -> None:
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def _emit(
        self,
        event: ConnectionEvent,
        error: SurgicalTimelineError | None = None,
    ) -> None:
        notice = ConnectionNotice(event=event, connected=self.is_connected, error=error)
        for listener in list(self._listeners[event]):
            try:
                listener(notice)
            except Exception:
                if not self._quiet:
                    logger.exception("Error in connection %s listener", event.value)

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self, endpoint: str | None = None) -> None:
        """Establish the connection.

        Returns immediately when already connected, and joins the in-flight
        attempt when one is running. While reconnecting or in quiet mode the
        call is a no-op; progress is reported through listeners.

        Raises:
            FeedConnectionError: The first connection attempt failed.
        """
        if self._status is ConnectionStatus.CONNECTED:
            logger.debug("Feed already connected")
            return
        if self._connecting is not None:
            await asyncio.shield(self._connecting)
            return
        if self._reconnect_task is not None or self._quiet:
            logger.debug("Connect skipped, status=%s", self._status.value)
            return

        self._endpoint = endpoint or self._settings.broker_url
        self._stopped = False
        self._connecting = asyncio.get_running_loop().create_future()
        self._set_status(ConnectionStatus.CONNECTING)
        logger.info("Connecting to feed at %s as %s", self._endpoint, self._client_id)
        try:
            await self._attempt()
        except FeedConnectionError as exc:
            self._connecting.set_exception(exc)
            # Mark retrieved so joiners that never arrived do not warn.
            self._connecting.exception()
            if self._stopped:
                self._set_status(ConnectionStatus.DISCONNECTED)
                raise
            self._record_failure(exc)
            self._schedule_reconnect()
            raise
        except asyncio.CancelledError:
            self._connecting.cancel()
            self._set_status(ConnectionStatus.DISCONNECTED)
            raise
        else:
            self._connecting.set_result(None)
        finally:
            self._connecting = None

    async def disconnect(self) -> None:
        """Drop every topic handler and close the connection.

        Cancels pending reconnect and cooldown timers and resets quiet mode,
        so the manager can be reused for a different procedure.
        """
        self._stopped = True
        for task in (self._reconnect_task, self._cooldown_task, *self._pending):
            await self._cancel(task)
        self._reconnect_task = None
        self._cooldown_task = None
        self._pending.clear()

        was_connected = self.is_connected
        self._handlers.clear()
        self._feed_topics.clear()
        self._failed_attempts = 0
        self._quiet = False
        self._last_error = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        await self._close_transport()
        if was_connected:
            logger.info("Disconnected from feed")
            self._emit(ConnectionEvent.DISCONNECT)

    def re_enable(self) -> None:
        """Leave quiet mode and resume reconnecting with a fresh budget."""
        if self._cooldown_task is not None and self._cooldown_task is not asyncio.current_task():
            self._cooldown_task.cancel()
        self._cooldown_task = None
        self._quiet = False
        self._failed_attempts = 0
        if self._stopped or self._endpoint is None or self.is_connected:
            if self._status is ConnectionStatus.DISABLED:
                self._set_status(ConnectionStatus.DISCONNECTED)
            return
        logger.info("Re-enabling feed connection for retry")
        self._set_status(ConnectionStatus.RECONNECTING)
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def subscribe(self, topic: str, handler: TopicHandler) -> bool:
        """Register ``handler`` for ``topic``.

        The broker subscription is created with the first handler for a
        topic. Registrations made while disconnected are applied on connect.

        Returns:
            True if the topic is (being) subscribed on a live connection,
            False if the subscription is deferred until connected.
        """
        handlers = self._handlers.setdefault(str(topic), set())
        handlers.add(handler)
        if not self.is_connected:
            if not self._quiet:
                logger.debug("Feed not connected, deferring subscribe to %s", topic)
            return False
        if str(topic) not in self._feed_topics:
            self._spawn(self._feed_subscribe(str(topic)))
        return True

    def unsubscribe(self, topic: str, handler: TopicHandler) -> None:
        """Remove ``handler``; the broker subscription goes with the last one."""
        handlers = self._handlers.get(str(topic))
        if handlers is None:
            return
        handlers.discard(handler)
        if handlers:
            return
        del self._handlers[str(topic)]
        if str(topic) in self._feed_topics:
            self._feed_topics.discard(str(topic))
            if self.is_connected:
                self._spawn(self._feed_unsubscribe(str(topic)))

    def publish(self, topic: str, payload: Any) -> bool:
        """Publish ``payload`` (str, bytes or JSON-serializable value).

        Returns:
            False without publishing when not connected.
        """
        if not self.is_connected:
            if not self._quiet:
                logger.warning("Feed not connected, cannot publish to %s", topic)
            return False
        if isinstance(payload, bytes):
            data = payload
        elif isinstance(payload, str):
            data = payload.encode("utf-8")
        else:
            data = json.dumps(payload).encode("utf-8")
        self._spawn(self._feed_publish(str(topic), data))
        return True

    async def drain(self) -> None:
        """Wait for queued subscribe/unsubscribe/publish calls to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_transport_message(self, topic: str, payload: bytes) -> None:
        try:
            message = json.loads(payload.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            if not self._quiet:
                logger.warning("Error parsing feed message on %s: %s", topic, exc)
            self._emit(ConnectionEvent.ERROR, FeedParseError(topic, str(exc)))
            return

        if not self._quiet:
            logger.debug("Feed message received topic=%s", topic)
        for handler in list(self._handlers.get(topic, ())):
            try:
                handler(topic, message)
            except Exception:
                if not self._quiet:
                    logger.exception("Error in feed handler for topic %s", topic)

    def _on_transport_lost(self, reason: str) -> None:
        if self._stopped or self._status is not ConnectionStatus.CONNECTED:
            return
        if not self._quiet:
            logger.info("Feed connection closed: %s", reason)
        self._feed_topics.clear()
        self._last_error = reason
        self._set_status(ConnectionStatus.RECONNECTING)
        self._emit(ConnectionEvent.DISCONNECT)
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status

    async def _attempt(self) -> None:
        if self._endpoint is None:
            raise FeedConnectionError("No broker endpoint configured")
        try:
            await asyncio.wait_for(
                self._transport.open(
                    self._endpoint,
                    client_id=self._client_id,
                    keepalive=self._settings.keepalive_seconds,
                ),
                timeout=self._settings.connect_timeout_seconds,
            )
        except TimeoutError as exc:
            await self._close_transport()
            raise FeedConnectionError("Connection timeout") from exc
        except FeedConnectionError:
            await self._close_transport()
            raise
        except OSError as exc:
            await self._close_transport()
            raise FeedConnectionError(str(exc)) from exc

        if self._stopped:
            await self._close_transport()
            raise FeedConnectionError("Connection cancelled by disconnect")

        self._failed_attempts = 0
        self._quiet = False
        self._last_error = None
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Feed connected")
        for topic in list(self._handlers):
            await self._feed_subscribe(topic)
        self._emit(ConnectionEvent.CONNECT)

    def _record_failure(self, error: FeedConnectionError) -> None:
        self._failed_attempts += 1
        self._last_error = str(error)
        if self._quiet:
            return
        if self._failed_attempts <= _LOGGED_FAILURES:
            logger.warning(
                "Feed connection error (attempt %d/%d): %s",
                self._failed_attempts,
                self._settings.max_reconnect_attempts,
                error,
            )
        self._emit(ConnectionEvent.ERROR, error)
        if self._failed_attempts >= self._settings.max_reconnect_attempts:
            self._enter_quiet_mode()
        else:
            self._set_status(ConnectionStatus.ERROR)

    def _enter_quiet_mode(self) -> None:
        logger.warning(
            "Max feed reconnection attempts reached, going quiet for %.0fs",
            self._settings.quiet_cooldown_seconds,
        )
        self._quiet = True
        self._set_status(ConnectionStatus.DISABLED)
        self._emit(
            ConnectionEvent.ERROR,
            FeedConnectionError("Max reconnection attempts reached"),
        )
        self._cooldown_task = asyncio.get_running_loop().create_task(self._cooldown())

    async def _cooldown(self) -> None:
        await asyncio.sleep(self._settings.quiet_cooldown_seconds)
        self.re_enable()

    def _schedule_reconnect(self) -> None:
        if self._stopped or self._quiet or self._reconnect_task is not None:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        try:
            while not (self._stopped or self._quiet or self.is_connected):
                self._set_status(ConnectionStatus.RECONNECTING)
                await asyncio.sleep(self._settings.reconnect_period_seconds)
                if not self._quiet and self._failed_attempts < _LOGGED_FAILURES:
                    logger.info(
                        "Feed reconnecting... (attempt %d)", self._failed_attempts + 1
                    )
                try:
                    await self._attempt()
                except FeedConnectionError as exc:
                    if self._stopped:
                        break
                    self._record_failure(exc)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    async def _feed_subscribe(self, topic: str) -> None:
        if topic in self._feed_topics or topic not in self._handlers:
            return
        try:
            await self._transport.subscribe(topic)
        except (FeedConnectionError, OSError) as exc:
            if not self._quiet:
                logger.warning("Feed subscription error for %s: %s", topic, exc)
            self._emit(ConnectionEvent.ERROR, FeedConnectionError(str(exc)))
            return
        self._feed_topics.add(topic)
        logger.info("Subscribed to feed topic: %s", topic)

    async def _feed_unsubscribe(self, topic: str) -> None:
        try:
            await self._transport.unsubscribe(topic)
        except (FeedConnectionError, OSError) as exc:
            if not self._quiet:
                logger.warning("Feed unsubscribe error for %s: %s", topic, exc)
            return
        logger.info("Unsubscribed from feed topic: %s", topic)

    async def _feed_publish(self, topic: str, payload: bytes) -> None:
        try:
            await self._transport.publish(topic, payload)
        except (FeedConnectionError, OSError) as exc:
            if not self._quiet:
                logger.error("Feed publish error for %s: %s", topic, exc)
            self._emit(ConnectionEvent.ERROR, FeedConnectionError(str(exc)))

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except (FeedConnectionError, OSError) as exc:
            logger.debug("Ignoring transport close error: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @staticmethod
    async def _cancel(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["ConnectionListener", "ConnectionManager", "TopicHandler"]
