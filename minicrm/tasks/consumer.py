"""
Generic queue consumer loop.

Takes one message at a time, runs the handler, acks on success and nacks on
any failure so a bad message never takes the worker down with it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from minicrm.exceptions import DependencyError
from minicrm.middleware.correlation import bind_request_id
from minicrm.services.queue_service import WorkQueue

Handler = Callable[[Any], Awaitable[Any]]

RECONNECT_DELAY_SECONDS = 5


class QueueConsumer:
    """Single logical consumer of one ``WorkQueue``."""

    def __init__(
        self,
        queue: WorkQueue,
        handler: Handler,
        log: Optional[logging.Logger] = None,
        block_timeout: float = 5,
    ):
        self.queue = queue
        self.handler = handler
        self.log = log or logging.getLogger(__name__)
        self.block_timeout = block_timeout

    async def process_next(self) -> bool:
        """Handle one message. Returns False when the queue stayed empty."""
        message = await self.queue.receive(timeout=self.block_timeout)
        if message is None:
            return False

        if not message.valid:
            self.log.error(f"Unreadable message on {self.queue.name}; dead-lettering it")
            await self.queue.nack(message, reason="unreadable envelope")
            return True

        with bind_request_id(message.id):
            try:
                await self.handler(message.body)
            except Exception as e:
                self.log.error(
                    f"Error processing message from {self.queue.name}: {e}",
                    exc_info=True,
                    extra={"message_id": message.id, "attempts": message.attempts},
                )
                await self.queue.nack(message, reason=str(e))
            else:
                await self.queue.ack(message)
        return True

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Consume until ``stop`` is set (or forever)."""
        stop = stop or asyncio.Event()
        recovered = False
        self.log.info(f"Consumer waiting for messages on {self.queue.name}...")

        while not stop.is_set():
            try:
                if not recovered:
                    await self.queue.recover()
                    recovered = True
                await self.process_next()
            except DependencyError as e:
                self.log.error(f"{e.detail}; retrying in {RECONNECT_DELAY_SECONDS}s")
                # A message may be stuck in :processing; sweep it back on reconnect
                recovered = False
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)

        self.log.info(f"Consumer on {self.queue.name} stopped")
