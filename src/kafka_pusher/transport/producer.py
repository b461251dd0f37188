"""
Kafka delivery of generated messages.

Thin wrapper over kafka-python's KafkaProducer that sends raw payload bytes,
waits for acknowledgements in synchronous mode, and keeps simple counters.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from kafka import KafkaProducer
from kafka.errors import KafkaError

from ..config.settings import KafkaSettings

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when messages cannot be delivered to the broker."""
    pass


@dataclass
class ProducerStats:
    """Delivery counters."""
    messages_sent: int = 0
    batches_sent: int = 0
    errors: int = 0


class Producer:
    """Sends payloads to Kafka topics."""

    def __init__(self, settings: KafkaSettings,
                 producer_factory: Callable[..., Any] = KafkaProducer):
        """
        Create the underlying client.

        Args:
            settings: Kafka section of the configuration
            producer_factory: KafkaProducer-compatible callable (tests pass a mock)

        Raises:
            TransportError: If the client cannot be created (e.g. no broker reachable)
        """
        self._settings = settings
        self._stats = ProducerStats()
        self._lock = threading.Lock()
        self._closed = False

        timeout_ms = int(settings.timeout * 1000)
        try:
            self._client = producer_factory(
                bootstrap_servers=settings.brokers,
                client_id=settings.client_id,
                acks=1,
                linger_ms=10,
                compression_type=None if settings.compression == 'none' else settings.compression,
                request_timeout_ms=timeout_ms,
                max_block_ms=timeout_ms,
            )
        except KafkaError as e:
            raise TransportError(f"failed to create kafka producer: {e}") from e

    def _record(self, messages: int = 0, batches: int = 0, errors: int = 0) -> None:
        with self._lock:
            self._stats.messages_sent += messages
            self._stats.batches_sent += batches
            self._stats.errors += errors

    def _dispatch(self, topic: str, payloads: Sequence[bytes]) -> None:
        futures = [
            self._client.send(topic, value=payload, partition=self._settings.partition)
            for payload in payloads
        ]
        if self._settings.async_send:
            return
        for future in futures:
            future.get(timeout=self._settings.timeout)

    def send(self, topic: str, payload: bytes) -> None:
        """
        Send one message.

        Raises:
            TransportError: If the broker rejects or does not acknowledge it
        """
        start = time.monotonic()
        try:
            self._dispatch(topic, [payload])
        except KafkaError as e:
            self._record(errors=1)
            logger.error(f"Failed to send message to {topic} after {time.monotonic() - start:.3f}s: {e}")
            raise TransportError(f"failed to write message: {e}") from e

        self._record(messages=1)
        logger.info(
            "Message sent",
            extra={'topic': topic, 'size': len(payload), 'duration': round(time.monotonic() - start, 6)},
        )

    def send_batch(self, topic: str, payloads: Sequence[bytes]) -> None:
        """
        Send several messages, waiting for acknowledgement every
        ``batch_size`` messages in synchronous mode.

        Raises:
            TransportError: On the first failed delivery
        """
        if not payloads:
            return

        start = time.monotonic()
        chunk = self._settings.batch_size
        try:
            for offset in range(0, len(payloads), chunk):
                self._dispatch(topic, payloads[offset:offset + chunk])
        except KafkaError as e:
            self._record(errors=1)
            logger.error(
                f"Failed to send batch of {len(payloads)} to {topic} "
                f"after {time.monotonic() - start:.3f}s: {e}"
            )
            raise TransportError(f"failed to write batch: {e}") from e

        self._record(messages=len(payloads), batches=1)
        logger.info(
            "Batch sent",
            extra={'topic': topic, 'count': len(payloads), 'duration': round(time.monotonic() - start, 6)},
        )

    def stats(self) -> ProducerStats:
        with self._lock:
            return ProducerStats(**vars(self._stats))

    def close(self) -> None:
        """Flush pending messages and close the client. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        logger.info("Closing kafka producer")
        try:
            self._client.flush(timeout=self._settings.timeout)
            self._client.close(timeout=self._settings.timeout)
        except KafkaError as e:
            raise TransportError(f"failed to close producer: {e}") from e


class StdoutSender:
    """Writes payloads to a text stream instead of Kafka (dry runs)."""

    def __init__(self, stream):
        self._stream = stream
        self._lock = threading.Lock()

    def send_batch(self, topic: str, payloads: List[bytes]) -> None:
        with self._lock:
            for payload in payloads:
                self._stream.write(f"{topic}\t{payload.decode('utf-8')}\n")
            self._stream.flush()

    def close(self) -> None:
        pass
