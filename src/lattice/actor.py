"""Single-task actors owning mutable state.

An Actor owns its state exclusively. Other tasks reach it only by putting
messages on its inbox (an ``asyncio.Queue``); one task drains the inbox and
runs ``handle`` for each message in arrival order, so mutations never
interleave.

``handle`` is synchronous. Handlers finish every write to the actor's state
before returning, and readers running on the same event loop therefore
never observe a half-applied update.

Example:
    >>> class Counter(Actor):
    ...     def __init__(self):
    ...         super().__init__(name="counter")
    ...         self._count = 0
    ...     def handle(self, message):
    ...         self._count += message
    ...         return self._count
    >>> async with Counter() as counter:
    ...     await counter.call(2)
    2
"""

import asyncio
import logging
from typing import Any, Optional

from lattice.errors import ErrorCode, LatticeError


logger = logging.getLogger(__name__)


class ActorNotRunningError(LatticeError):
    """Raised when a message is sent to an actor that is not running."""

    code = ErrorCode.ACTOR_NOT_RUNNING

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Actor is not running: {name}", details={"actor": name})


class _Envelope:
    __slots__ = ("message", "reply")

    def __init__(self, message: Any, reply: Optional[asyncio.Future]):
        self.message = message
        self.reply = reply


_STOP = object()


class Actor:
    """Base class for actors.

    Subclasses implement ``handle`` and may override ``on_start`` and
    ``on_stop`` to acquire and release resources such as bus subscriptions.

    Attributes:
        name: Name used for the inbox task and in logs.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or type(self).__name__
        self._inbox: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start draining the inbox. Starting a running actor is a no-op."""
        if self._running:
            return

        self._inbox = asyncio.Queue()
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"actor:{self.name}")
        await self.on_start()

        logger.info("Actor started", extra={"actor": self.name})

    async def stop(self) -> None:
        """Stop the actor after the messages already queued are handled."""
        if not self._running:
            return

        # Messages sent from on_stop are still handled
        await self.on_stop()
        self._running = False

        self._inbox.put_nowait(_STOP)
        try:
            await self._task
        finally:
            self._fail_pending()
            self._task = None

        logger.info("Actor stopped", extra={"actor": self.name})

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def call(self, message: Any) -> Any:
        """Send a message and wait for the handler's result.

        Raises:
            ActorNotRunningError: If the actor is not running.
            Exception: Whatever ``handle`` raised for this message.
        """
        if not self._running:
            raise ActorNotRunningError(self.name)

        reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Envelope(message, reply))
        return await reply

    def cast(self, message: Any) -> None:
        """Send a message without waiting. Handler errors are only logged.

        Raises:
            ActorNotRunningError: If the actor is not running.
        """
        if not self._running:
            raise ActorNotRunningError(self.name)

        self._inbox.put_nowait(_Envelope(message, None))

    def handle(self, message: Any) -> Any:
        """Handle one message and return the reply for ``call``."""
        raise NotImplementedError

    async def on_start(self) -> None:
        """Hook run once the inbox task is started."""

    async def on_stop(self) -> None:
        """Hook run on shutdown while the actor still accepts messages."""

    async def _run(self) -> None:
        while True:
            envelope = await self._inbox.get()
            if envelope is _STOP:
                break

            try:
                result = self.handle(envelope.message)
            except Exception as e:
                if envelope.reply is None:
                    logger.exception(
                        "Actor failed to handle message",
                        extra={"actor": self.name, "message_type": type(envelope.message).__name__},
                    )
                elif not envelope.reply.done():
                    envelope.reply.set_exception(e)
                continue

            if envelope.reply is not None and not envelope.reply.done():
                envelope.reply.set_result(result)

    def _fail_pending(self) -> None:
        while not self._inbox.empty():
            envelope = self._inbox.get_nowait()
            if envelope is _STOP or envelope.reply is None:
                continue
            if not envelope.reply.done():
                envelope.reply.set_exception(ActorNotRunningError(self.name))
