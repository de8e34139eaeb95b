"""RabbitMQ adapter for render job messages.

One RenderQueue per process owns one AMQP connection and one channel. The
producer (API) uses publish(); workers use consume() and acknowledge each
delivery explicitly, which gives at-least-once delivery.

Queue Contract:
    - Durable queue (default "render_jobs") declared on connect
    - Persistent messages (delivery_mode=2), content type application/json
    - Published through the default exchange, routing key = queue name
    - prefetch_count=1: a worker holds at most one unacknowledged message
    - Manual ack: the handler calls delivery.ack() exactly once

Connection Strategy:
    connect() retries forever with a fixed delay (default 5s, no backoff,
    no cap), logging every failed attempt. publish() never waits for a
    connection: without an open channel it raises ChannelUnavailable. A
    broker error during publish drops the connection and starts a background
    reconnect (start_connecting), so a long-running API recovers on its own.

Architecture Pattern:
    kombu is a blocking client, so every broker call runs in a worker thread
    via asyncio.to_thread (same pattern as cli_wrapper). An asyncio.Lock keeps
    calls on the shared channel sequential.

Usage:
    queue = RenderQueue()
    await queue.connect()
    await queue.publish(RenderMessage(job_id=..., asset_path=..., project_id=...))
    await queue.consume(handler)  # returns on stop, raises BrokerUnavailable on loss
    await queue.close()
"""

import asyncio
import socket
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from amqp.exceptions import AMQPError
from kombu import Connection, Consumer, Producer, Queue
from kombu.entity import PERSISTENT_DELIVERY_MODE
from kombu.exceptions import KombuError
from kombu.message import Message
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_never,
    wait_fixed,
)

from render_pipeline.config import (
    get_rabbitmq_url,
    get_reconnect_delay,
    get_render_queue_name,
)
from render_pipeline.exceptions import BrokerUnavailable, ChannelUnavailable
from render_pipeline.schemas.job import RenderMessage
from render_pipeline.utils.logging import get_logger

log = get_logger(__name__)

PREFETCH_COUNT = 1
CONNECT_TIMEOUT_SECONDS = 10.0
# How long one drain_events call blocks before checking for a stop request
POLL_INTERVAL_SECONDS = 1.0

# Errors that mean "broker not reachable or connection lost"
BROKER_ERRORS = (AMQPError, KombuError, OSError)


class Delivery(Protocol):
    """A received message awaiting acknowledgment.

    Satisfied by KombuDelivery and by test fakes.
    """

    body: bytes
    redelivered: bool

    async def ack(self) -> None: ...


DeliveryHandler = Callable[[Delivery], Awaitable[None]]


class KombuDelivery:
    """Delivery backed by a kombu message."""

    def __init__(self, message: Message) -> None:
        self._message = message
        body = message.body
        self.body: bytes = body if isinstance(body, bytes) else str(body).encode()
        self.redelivered: bool = bool(message.delivery_info.get("redelivered", False))

    async def ack(self) -> None:
        await asyncio.to_thread(self._message.ack)

    def __repr__(self) -> str:
        return f"<KombuDelivery(size={len(self.body)}, redelivered={self.redelivered})>"


def _log_connect_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        error = task.exception()
        log.error("broker_connect_task_failed", error=str(error), error_type=type(error).__name__)


def redact_url(url: str) -> str:
    """Strip credentials from an AMQP URL for logging."""
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"


class RenderQueue:
    """Durable render job queue over a single AMQP connection.

    Args:
        url: Broker URL (default RABBITMQ_URL). Any kombu URL works,
            e.g. "memory://" for in-process tests.
        queue_name: Queue to declare (default RENDER_QUEUE_NAME).
        reconnect_delay: Seconds between connect attempts
            (default BROKER_RECONNECT_DELAY_SECONDS).
        poll_interval: Seconds one drain call waits for a message.
    """

    def __init__(
        self,
        url: str | None = None,
        queue_name: str | None = None,
        reconnect_delay: float | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self.url = url or get_rabbitmq_url()
        self.queue_name = queue_name or get_render_queue_name()
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else get_reconnect_delay()
        )
        self.poll_interval = poll_interval

        self._connection: Connection | None = None
        self._channel: Any | None = None
        self._queue: Queue | None = None
        self._producer: Producer | None = None
        self._lock = asyncio.Lock()
        self._stop_requested = False
        self._connect_task: asyncio.Task | None = None

    @property
    def is_connected(self) -> bool:
        return (
            self._connection is not None
            and self._connection.connected
            and self._channel is not None
        )

    def _open(self) -> None:
        connection = Connection(self.url, connect_timeout=CONNECT_TIMEOUT_SECONDS)
        try:
            connection.connect()
            channel = connection.channel()
            channel.basic_qos(0, PREFETCH_COUNT, False)
            queue = Queue(self.queue_name, routing_key=self.queue_name, durable=True)
            queue(channel).declare()
            producer = Producer(channel, routing_key=self.queue_name)
        except BaseException:
            connection.release()
            raise

        self._connection = connection
        self._channel = channel
        self._queue = queue
        self._producer = producer

    def _log_connect_failure(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "broker_connect_failed",
            url=redact_url(self.url),
            attempt=retry_state.attempt_number,
            retry_in_seconds=self.reconnect_delay,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def connect(self) -> None:
        """Open connection, channel and durable queue, retrying forever.

        Each failed attempt is logged and retried after a fixed delay.
        Returns once the queue is declared, or early (unconnected) after
        stop_consuming().
        """
        # The lock covers one attempt, never the delay between attempts
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(BROKER_ERRORS),
            wait=wait_fixed(self.reconnect_delay),
            stop=stop_never,
            before_sleep=self._log_connect_failure,
            reraise=True,
        ):
            if self._stop_requested:
                log.info("broker_connect_abandoned", queue=self.queue_name)
                return
            with attempt:
                async with self._lock:
                    if not self.is_connected:
                        await asyncio.to_thread(self._open)

        log.info(
            "broker_connected",
            url=redact_url(self.url),
            queue=self.queue_name,
            prefetch=PREFETCH_COUNT,
        )

    async def publish(self, message: RenderMessage) -> None:
        """Publish a persistent render message to the queue.

        Never waits for a connection. A broker error drops the connection and
        starts reconnecting in the background before it is re-raised.

        Raises:
            ChannelUnavailable: If no open channel exists. Nothing is buffered.
            AMQPError / KombuError / OSError: If the broker rejects the publish.
        """
        if not self.is_connected:
            raise ChannelUnavailable(f"No open channel for queue {self.queue_name}")

        async with self._lock:
            if not self.is_connected or self._producer is None:
                raise ChannelUnavailable(f"No open channel for queue {self.queue_name}")

            try:
                await asyncio.to_thread(
                    self._producer.publish,
                    message.to_body(),
                    exchange="",
                    routing_key=self.queue_name,
                    delivery_mode=PERSISTENT_DELIVERY_MODE,
                    content_type="application/json",
                    content_encoding="utf-8",
                    retry=False,
                )
            except BROKER_ERRORS as e:
                log.warning(
                    "broker_publish_failed",
                    queue=self.queue_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._release_connection()
                self.start_connecting()
                raise
        log.info("render_message_published", job_id=message.job_id, queue=self.queue_name)

    async def consume(self, handler: DeliveryHandler) -> None:
        """Deliver messages to handler one at a time.

        The handler is awaited to completion before the next message is
        fetched. It must acknowledge the delivery itself.

        Returns:
            When stop_consuming() was called.

        Raises:
            BrokerUnavailable: If not connected, or the connection was lost
                while consuming.
        """
        if self._stop_requested:
            return
        if not self.is_connected or self._queue is None:
            raise BrokerUnavailable(f"Not connected to queue {self.queue_name}")

        pending: deque[Message] = deque()
        consumer = Consumer(
            self._channel,
            queues=[self._queue],
            no_ack=False,
            on_message=pending.append,
        )
        try:
            await asyncio.to_thread(consumer.consume)
        except BROKER_ERRORS as e:
            raise BrokerUnavailable(f"Failed to start consumer: {e}") from e

        log.info("consume_started", queue=self.queue_name)
        try:
            while not self._stop_requested:
                try:
                    await asyncio.to_thread(
                        self._connection.drain_events, timeout=self.poll_interval
                    )
                except socket.timeout:
                    continue
                except BROKER_ERRORS as e:
                    raise BrokerUnavailable(f"Broker connection lost: {e}") from e

                while pending:
                    await handler(KombuDelivery(pending.popleft()))
        finally:
            if self.is_connected:
                try:
                    await asyncio.to_thread(consumer.cancel)
                except BROKER_ERRORS as e:
                    log.warning("consumer_cancel_failed", error=str(e))

        log.info("consume_stopped", queue=self.queue_name)

    def stop_consuming(self) -> None:
        """Make consume() return once the in-flight delivery, if any, completes."""
        self._stop_requested = True

    def start_connecting(self) -> asyncio.Task:
        """Run connect() in a background task unless one is already running.

        Used by the API process, which must keep serving while the broker is
        unreachable. close() cancels the task.
        """
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self.connect())
            self._connect_task.add_done_callback(_log_connect_result)
        return self._connect_task

    async def _release_connection(self) -> None:
        """Forget connection state and release the connection. Caller holds the lock."""
        connection = self._connection
        self._connection = None
        self._channel = None
        self._queue = None
        self._producer = None

        if connection is None:
            return
        try:
            await asyncio.to_thread(connection.release)
        except BROKER_ERRORS as e:
            log.warning("broker_close_failed", error=str(e), error_type=type(e).__name__)
            return
        log.info("broker_connection_closed", queue=self.queue_name)

    async def close(self) -> None:
        """Cancel background connecting, close channel and connection.

        Safe to call more than once.
        """
        connect_task = self._connect_task
        self._connect_task = None
        if connect_task is not None and not connect_task.done():
            connect_task.cancel()
            try:
                await connect_task
            except asyncio.CancelledError:
                log.info("broker_connect_cancelled", queue=self.queue_name)

        async with self._lock:
            await self._release_connection()
