"""Shared fixtures: temporary databases, a scripted model and an app client."""

from dataclasses import dataclass, field

import pytest
from advanced_alchemy.base import UUIDAuditBase
from litestar.testing import AsyncTestClient
from pydantic_ai.messages import ModelMessage
from pydantic_ai.models.function import AgentInfo, FunctionModel
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import models  # noqa: F401
from app import create_app
from config import AuthSettings, DatabaseSettings, Settings, UploadSettings
from controllers.completion import AgentCompletionGateway

JWT_SECRET = "test-secret-that-is-long-enough-for-hs256"
REPLY_DELTAS = ["Hel", "lo", " there", "!"]


@dataclass
class Script:
    """What the fake model answers; tests edit it before sending."""

    deltas: list[str] = field(default_factory=lambda: list(REPLY_DELTAS))
    fail_after: int | None = None
    requests: list[list[ModelMessage]] = field(default_factory=list)

    @property
    def reply(self) -> str:
        return "".join(self.deltas)

    def model(self) -> FunctionModel:
        async def stream(messages: list[ModelMessage], info: AgentInfo):
            self.requests.append(list(messages))
            for index, delta in enumerate(self.deltas):
                if index == self.fail_after:
                    raise RuntimeError("model exploded")
                yield delta

        return FunctionModel(stream_function=stream)


def parse_sse(body: str) -> list[tuple[str, str]]:
    """Split an SSE body into (event, data) pairs."""
    frames = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        event, data = "message", []
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data.append(line[len("data:"):].strip())
        if data:
            frames.append((event, "\n".join(data)))
    return frames


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}"),
        auth=AuthSettings(jwt_secret=JWT_SECRET, password_iterations=1_000),
        uploads=UploadSettings(directory=tmp_path / "uploads"),
    )


@pytest.fixture
def script() -> Script:
    return Script()


@pytest.fixture
def gateway(script: Script) -> AgentCompletionGateway:
    return AgentCompletionGateway(script.model())


@pytest.fixture
async def client(settings: Settings, gateway: AgentCompletionGateway):
    app = create_app(settings, gateway=gateway)
    async with AsyncTestClient(app=app) as test_client:
        yield test_client


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(UUIDAuditBase.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def login(
    client, username: str = "a", email: str = "a@x.com", password: str = "pw"
) -> dict[str, str]:
    """Sign up and log in; return the Authorization header."""
    await client.post(
        "/signup", json={"username": username, "email": email, "password": password}
    )
    response = await client.post("/login", json={"username": username, "password": password})
    return {"Authorization": f"Bearer {response.json()['token']}"}
