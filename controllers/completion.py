"""Pydantic AI completion gateway for an OpenAI-compatible chat model.

The gateway turns a chat's stored messages into a model request and
exposes the reply as a plain sequence of text deltas. Prior messages
become pydantic-ai message history; the newest message is the prompt.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path, PurePosixPath
from typing import Protocol

import httpx
from pydantic_ai import Agent
from pydantic_ai.messages import (
    BinaryContent,
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserContent,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from config import DEFAULT_INSTRUCTIONS, CompletionSettings
from controllers.errors import FreeSeekError, UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    """One role-tagged message of conversation context."""

    role: str
    content: str
    content_type: str = "text"


class CompletionGateway(Protocol):
    def stream(self, turns: Sequence[Turn]) -> AsyncGenerator[str, None]:
        """Yield text deltas of the reply to `turns`, in order."""
        ...


# ---------------------------------------------------------------------------
# Model helpers
# ---------------------------------------------------------------------------


def build_model(settings: CompletionSettings) -> OpenAIChatModel:
    """Build the chat model from settings. The httpx client carries the timeout."""
    provider = OpenAIProvider(
        base_url=settings.base_url,
        api_key=settings.api_key,
        http_client=httpx.AsyncClient(timeout=settings.timeout),
    )
    return OpenAIChatModel(settings.model, provider=provider)


def _is_timeout(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class AgentCompletionGateway:
    """Stream completions through a pydantic-ai agent.

    Pass `model` to use a ready-made model (tests use `FunctionModel`);
    otherwise one is built from `settings` on first use.
    """

    def __init__(
        self,
        model: Model | None = None,
        *,
        settings: CompletionSettings | None = None,
        upload_dir: Path | None = None,
    ) -> None:
        if model is None and settings is None:
            raise ValueError("either a model or completion settings are required")
        self._model = model
        self._settings = settings or CompletionSettings()
        self._upload_dir = upload_dir
        self.agent = Agent(instructions=self._settings.instructions or DEFAULT_INSTRUCTIONS)

    @cached_property
    def model(self) -> Model:
        if self._model is not None:
            return self._model
        return build_model(self._settings)

    async def stream(self, turns: Sequence[Turn]) -> AsyncGenerator[str, None]:
        if not turns:
            raise UpstreamError("No conversation context to complete")
        history = [self._to_model_message(turn) for turn in turns[:-1]]
        prompt = self._user_content(turns[-1])

        try:
            async with self.agent.run_stream(
                prompt, message_history=history or None, model=self.model
            ) as result:
                async for delta in result.stream_text(delta=True, debounce_by=None):
                    if delta:
                        yield delta
        except FreeSeekError:
            raise
        except Exception as exc:
            if _is_timeout(exc):
                raise UpstreamTimeout() from exc
            raise UpstreamError(f"Completion request failed: {exc}") from exc

    def _to_model_message(self, turn: Turn) -> ModelMessage:
        if turn.role == "assistant":
            return ModelResponse(parts=[TextPart(content=turn.content)])
        return ModelRequest(parts=[UserPromptPart(content=self._user_content(turn))])

    def _user_content(self, turn: Turn) -> str | list[UserContent]:
        if turn.content_type != "image":
            return turn.content

        name = PurePosixPath(turn.content).name
        image = self._load_image(name)
        if image is None:
            return f"[The user shared an image: {name}]"
        return ["The user shared this image.", image]

    def _load_image(self, name: str) -> BinaryContent | None:
        if not self._settings.vision or self._upload_dir is None or not name:
            return None
        path = self._upload_dir / name
        if not path.is_file():
            logger.warning("Image %s referenced by a message is missing", path)
            return None
        media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        return BinaryContent(data=path.read_bytes(), media_type=media_type)
