"""
Message delivery with bounded retry.
"""

import asyncio
import logging
from collections import defaultdict

from webex_status.errors import (
    AuthError,
    NetworkError,
    PermanentDispatchError,
    RateLimitError,
)
from webex_status.models import OutboundMessage
from webex_status.notifier import ChatClient, MessageSender

logger = logging.getLogger(__name__)

# Retry-After hints are padded by 20%
RETRY_AFTER_BUFFER = 1.2


class Dispatcher:
    """
    Sends outbound messages through a chat client.

    Transient failures (network errors, 5xx, rate limiting) are retried up
    to ``retry_count`` attempts in total with exponential backoff starting
    at ``retry_interval`` seconds; a ``Retry-After`` hint takes precedence.
    Permanent failures give up immediately.
    """

    def __init__(
        self,
        client: ChatClient,
        retry_count: int = 5,
        retry_interval: float = 1.0,
        max_delay: float = 60.0,
    ):
        self.client = client
        self.retry_count = max(retry_count, 1)
        self.retry_interval = retry_interval
        self.max_delay = max_delay

    def _backoff(self, attempt: int, error: Exception) -> float:
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            return error.retry_after * RETRY_AFTER_BUFFER
        return min(self.retry_interval * (2 ** (attempt - 1)), self.max_delay)

    async def send(self, target: str, message: OutboundMessage) -> bool:
        """
        Deliver a message to a room.

        Parameters
        ----------
        target : str
            Room identifier.
        message : OutboundMessage
            The message to deliver.

        Returns
        -------
        bool
            True if the message was accepted, False if delivery failed.
        """
        for attempt in range(1, self.retry_count + 1):
            try:
                logger.debug("Message send attempt %d/%d", attempt, self.retry_count)
                await self.client.create_message(target, message.body_html)
                logger.info("Message sent to room %s", target[-12:])
                return True
            except (AuthError, PermanentDispatchError) as e:
                logger.error("Unable to send message, not retrying: %s", e)
                return False
            except (NetworkError, RateLimitError) as e:
                if attempt >= self.retry_count:
                    logger.error(
                        "Unable to send message after %d attempts: %s",
                        self.retry_count,
                        e,
                    )
                    return False
                delay = self._backoff(attempt, e)
                logger.warning(
                    "Message send failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    self.retry_count,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
        return False


class SerializedDispatcher:
    """
    Decorator serializing sends per target.

    Different targets are still delivered concurrently.
    """

    def __init__(self, inner: MessageSender):
        self.inner = inner
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def send(self, target: str, message: OutboundMessage) -> bool:
        async with self._locks[target]:
            return await self.inner.send(target, message)
