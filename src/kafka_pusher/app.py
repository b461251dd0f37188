"""Push application: payload generators wired to a message sender."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .config.settings import Config, PayloadSettings
from .template import Generator, LoadError, TemplateError

logger = logging.getLogger(__name__)


class Sender(Protocol):
    """Anything that can deliver a batch of payloads to a destination."""

    def send_batch(self, topic: str, payloads: Sequence[bytes]) -> None: ...

    def close(self) -> None: ...


class PushError(Exception):
    """Raised when a push round fails for any payload."""
    pass


@dataclass
class PayloadGenerator:
    """A configured payload stream with its loaded generator."""
    name: str
    generator: Generator
    batch_size: int
    topic: str


def build_generators(payloads: Sequence[PayloadSettings]) -> List[PayloadGenerator]:
    """
    Load one Generator per configured payload.

    Raises:
        LoadError: Naming the payload whose template failed to load
    """
    result = []
    for payload in payloads:
        try:
            generator = Generator.from_file(payload.template_path)
        except LoadError as e:
            raise LoadError(f"failed to create template generator for {payload.name}: {e}") from e

        result.append(PayloadGenerator(
            name=payload.name,
            generator=generator,
            batch_size=payload.batch_size,
            topic=payload.topic,
        ))
        logger.info(
            f"Template generator initialized: {payload.name} "
            f"(path={payload.template_path}, batch_size={payload.batch_size}, topic={payload.topic})"
        )
    return result


class Pusher:
    """Generates message batches for every payload and hands them to a sender."""

    def __init__(self, config: Config, sender: Sender,
                 generators: Optional[List[PayloadGenerator]] = None):
        self.config = config
        self.sender = sender
        self.generators = generators if generators is not None else build_generators(config.payloads)

    def _push_payload(self, pg: PayloadGenerator) -> int:
        messages = []
        for i in range(pg.batch_size):
            try:
                message = pg.generator.generate()
            except TemplateError as e:
                raise PushError(f"failed to generate message {i} for {pg.name}: {e}") from e
            messages.append(message)

            if self.config.logging.verbose:
                logger.debug(f"Generated message {i} for {pg.name}: {message.decode('utf-8')}")

        logger.info(f"Sending batch of {len(messages)} for {pg.name} to topic {pg.topic}")
        try:
            self.sender.send_batch(pg.topic, messages)
        except Exception as e:
            raise PushError(f"failed to send batch for {pg.name}: {e}") from e
        return len(messages)

    def push_round(self) -> int:
        """
        Generate and send one batch per payload, payloads in parallel.

        Returns:
            Number of messages sent

        Raises:
            PushError: The first failure among the payloads
        """
        if not self.generators:
            return 0

        with ThreadPoolExecutor(max_workers=len(self.generators),
                                thread_name_prefix="pusher-payload") as pool:
            futures = [pool.submit(self._push_payload, pg) for pg in self.generators]

        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            for extra in errors[1:]:
                logger.error(f"Additional push failure: {extra}")
            raise errors[0]

        return sum(f.result() for f in futures)

    def close(self) -> None:
        self.sender.close()
