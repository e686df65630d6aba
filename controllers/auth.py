from litestar import Controller, Request, post
from litestar.datastructures import State
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from controllers.credentials import decode_token, issue_token, register, verify
from controllers.errors import AuthError
from models.user import User


class SignupRequest(BaseModel):
    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


async def provide_current_user(request: Request, db_session: AsyncSession) -> User:
    """Resolve the bearer token on the request to a user."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Unauthorized")

    user_id = decode_token(token, request.app.state.settings.auth)
    user = await db_session.get(User, user_id)
    if user is None:
        raise AuthError("Invalid token")
    return user


class AuthController(Controller):
    path = "/"

    @post("/signup", status_code=201)
    async def signup(
        self, data: SignupRequest, db_session: AsyncSession, state: State
    ) -> dict[str, str]:
        await register(
            db_session,
            data.username,
            data.email,
            data.password,
            iterations=state.settings.auth.password_iterations,
        )
        return {"message": "User created successfully"}

    @post("/login", status_code=200)
    async def login(
        self, data: LoginRequest, db_session: AsyncSession, state: State
    ) -> dict[str, str]:
        auth = state.settings.auth
        user_id = await verify(
            db_session, data.username, data.password, iterations=auth.password_iterations
        )
        return {"token": issue_token(user_id, auth)}
