"""Outbound delivery of one-time codes.

The real SMS/email provider lives outside this service; anything implementing
``DeliveryChannel`` can be plugged into the container. Dispatch is
fire-and-forget: the transfer advances once the challenge is recorded, and a
slow or failing provider only produces a log line.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Protocol

from .exceptions import DeliveryError
from .models import DeliveryAck, IssuedChallenge

logger = logging.getLogger(__name__)


def mask_destination(contact: str) -> str:
    """Hide most of a phone number or email address, keeping enough to recognise it."""
    contact = contact.strip()
    if "@" in contact:
        local, _, domain = contact.partition("@")
        if len(local) <= 2:
            masked_local = local[:1] + "*"
        else:
            masked_local = f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}"
        return f"{masked_local}@{domain}"
    if len(contact) <= 4:
        return "*" * len(contact)
    keep_head = 4 if contact.startswith("+") else 2
    keep_head = min(keep_head, len(contact) - 2)
    return f"{contact[:keep_head]}{'*' * (len(contact) - keep_head - 2)}{contact[-2:]}"


class DeliveryChannel(Protocol):
    async def send(self, destination: str, code: str) -> DeliveryAck:
        """Hand the code to the provider; raise ``DeliveryError`` on failure."""
        ...


class LoggingDeliveryChannel:
    """Default channel for environments without a provider: writes a log record only."""

    name = "log"

    def __init__(self, reveal_codes: bool = False) -> None:
        self._reveal_codes = reveal_codes

    async def send(self, destination: str, code: str) -> DeliveryAck:
        if not destination:
            raise DeliveryError("no destination to deliver the code to")
        message_id = uuid.uuid4().hex
        if self._reveal_codes:
            logger.info("One-time code %s for %s (message %s)", code, mask_destination(destination), message_id)
        else:
            logger.info("One-time code issued for %s (message %s)", mask_destination(destination), message_id)
        return DeliveryAck(message_id=message_id, channel=self.name)


class DeliveryDispatcher:
    """Runs each delivery as a background task bounded by ``timeout`` seconds."""

    def __init__(self, channel: DeliveryChannel, timeout: float = 5.0) -> None:
        self.channel = channel
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, issued: IssuedChallenge) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(issued))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, issued: IssuedChallenge) -> None:
        challenge = issued.challenge
        try:
            ack = await asyncio.wait_for(
                self.channel.send(issued.contact, challenge.code), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Delivery of challenge %s to %s timed out after %.1fs",
                challenge.id,
                challenge.destination,
                self.timeout,
            )
        except DeliveryError as exc:
            logger.warning("Delivery of challenge %s failed: %s", challenge.id, exc)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Delivery channel crashed for challenge %s", challenge.id)
        else:
            logger.info(
                "Challenge %s handed to %s channel (message %s)",
                challenge.id,
                ack.channel,
                ack.message_id,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = [
    "DeliveryChannel",
    "DeliveryDispatcher",
    "LoggingDeliveryChannel",
    "mask_destination",
]
