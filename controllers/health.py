from litestar import Controller, Response, get
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


class HealthController(Controller):
    """Unauthenticated health check; also proves the database answers."""

    path = "/healthz"

    @get("/")
    async def health(self, db_session: AsyncSession) -> Response:
        await db_session.execute(text("SELECT 1"))
        return Response(content={"ok": True}, status_code=200)
