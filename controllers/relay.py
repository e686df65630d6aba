"""Streaming relay for a single chat turn.

A background task pumps the completion gateway into a bounded
asyncio.Queue; the SSE generator drains the queue, forwarding each delta
as it arrives while accumulating the full reply. The assistant message is
persisted once, after the gateway finishes without error.

    submitted -> relaying -> completed
                          -> failed
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import AsyncGenerator, Callable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from controllers.completion import CompletionGateway, Turn
from controllers.conversations import append_message
from controllers.errors import FreeSeekError, PersistenceError, UpstreamError

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


class TurnState(str, enum.Enum):
    SUBMITTED = "submitted"
    RELAYING = "relaying"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Relay events
# ---------------------------------------------------------------------------


@dataclass
class DeltaEvent:
    text: str


@dataclass
class DoneEvent:
    message_id: UUID


@dataclass
class ErrorEvent:
    error: str


RelayEvent = DeltaEvent | DoneEvent | ErrorEvent


@dataclass
class _Failure:
    error: FreeSeekError


_END = object()


# ---------------------------------------------------------------------------
# Chat turn
# ---------------------------------------------------------------------------


class ChatTurn:
    """One submitted user message and the assistant reply streamed for it.

    `turns` must already include the persisted user message.
    """

    def __init__(
        self,
        *,
        chat_id: UUID,
        user_id: UUID,
        turns: Sequence[Turn],
        gateway: CompletionGateway,
        session_factory: SessionFactory,
    ) -> None:
        self.chat_id = chat_id
        self.user_id = user_id
        self.turns = list(turns)
        self.gateway = gateway
        self.session_factory = session_factory
        self.state = TurnState.SUBMITTED
        self.deltas: list[str] = []
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task | None = None
        self._first: object = None

    @property
    def text(self) -> str:
        return "".join(self.deltas)

    async def open(self) -> None:
        """Start the gateway and wait for its first result.

        Failures before the first delta are raised here, while the caller
        can still answer with a proper status code.
        """
        if self._task is not None:
            raise RuntimeError("turn already opened")
        logger.info("Relaying turn for chat %s (%d messages)", self.chat_id, len(self.turns))
        self._task = asyncio.create_task(self._pump())
        try:
            first = await self._queue.get()
        except BaseException:
            self.state = TurnState.FAILED
            await self._stop_pump()
            raise
        if isinstance(first, _Failure):
            self.state = TurnState.FAILED
            await self._task
            logger.warning("Turn for chat %s failed before streaming: %s", self.chat_id, first.error)
            raise first.error
        self._first = first
        self.state = TurnState.RELAYING

    async def _pump(self) -> None:
        try:
            async with contextlib.aclosing(self.gateway.stream(self.turns)) as stream:
                async for delta in stream:
                    await self._queue.put(delta)
        except FreeSeekError as exc:
            await self._queue.put(_Failure(exc))
            return
        except Exception as exc:
            logger.warning("Completion stream for chat %s crashed", self.chat_id, exc_info=True)
            await self._queue.put(_Failure(UpstreamError(str(exc) or None)))
            return
        await self._queue.put(_END)

    async def events(self) -> AsyncGenerator[RelayEvent, None]:
        """Yield deltas in gateway order, then a terminal done or error event.

        Closing this generator early (client disconnect) stops the gateway
        and leaves the chat without an assistant message.
        """
        if self.state is not TurnState.RELAYING:
            raise RuntimeError(f"cannot relay a turn in state {self.state.value}")

        item = self._first
        try:
            while True:
                if item is _END:
                    message_id = await self._persist()
                    self.state = TurnState.COMPLETED
                    logger.info(
                        "Turn for chat %s completed (%d chars)", self.chat_id, len(self.text)
                    )
                    yield DoneEvent(message_id=message_id)
                    return
                if isinstance(item, _Failure):
                    self.state = TurnState.FAILED
                    logger.warning("Turn for chat %s failed mid-stream: %s", self.chat_id, item.error)
                    yield ErrorEvent(error=str(item.error))
                    return

                self.deltas.append(item)
                yield DeltaEvent(text=item)
                item = await self._queue.get()
        except FreeSeekError as exc:
            # raised by _persist only; gateway failures arrive as _Failure items
            self.state = TurnState.FAILED
            yield ErrorEvent(error=str(exc))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Stop the gateway; an unsettled turn is discarded.

        Safe to call at any point, including before `events()` is iterated
        and after the turn has completed.
        """
        if self.state is TurnState.RELAYING:
            self.state = TurnState.FAILED
            logger.info("Client left chat %s mid-stream; reply discarded", self.chat_id)
        await self._stop_pump()

    async def _persist(self) -> UUID:
        try:
            async with self.session_factory() as session:
                message = await append_message(
                    session, self.chat_id, self.user_id, "assistant", self.text
                )
                await session.commit()
                return message.id
        except SQLAlchemyError as exc:
            logger.error("Could not save reply for chat %s", self.chat_id, exc_info=True)
            raise PersistenceError() from exc

    async def _stop_pump(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
