"""Account, login and result-reporting endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Header

from api.accounts import (
    AccountNotFoundError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    UsernameTakenError,
    get_account_store,
)
from api.routes.game import discard_table
from api.schemas import (
    AccountResponse,
    AuthResponse,
    CredentialsRequest,
    ResultRequest,
    ResultResponse,
)
from api.session import SESSION_KEY_USER, create_session, delete_session, get_session
from core.game import RoundOutcome

router = APIRouter()


async def _session_user(session_id: str | None) -> dict[str, Any]:
    """
    Return the logged-in user stored in the session.

    Raises:
        NotAuthenticatedError: No session, or the session has no user
    """
    if session_id is None:
        raise NotAuthenticatedError("not_authenticated")
    session_data = await get_session(session_id)
    if not session_data or SESSION_KEY_USER not in session_data:
        raise NotAuthenticatedError("not_authenticated")
    return session_data[SESSION_KEY_USER]


async def _login_session(account_id: int, username: str) -> AuthResponse:
    session_id = await create_session({SESSION_KEY_USER: {"id": account_id, "username": username}})
    return AuthResponse(session_id=session_id, id=account_id, username=username)


@router.post("/auth/register", status_code=201)
async def register(request: CredentialsRequest) -> AuthResponse:
    """Create an account and log it in."""
    store = await get_account_store()
    try:
        account = await store.register(request.username, request.password)
    except UsernameTakenError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return await _login_session(account.id, account.username)


@router.post("/auth/login")
async def login(request: CredentialsRequest) -> AuthResponse:
    """Check credentials and start a session."""
    store = await get_account_store()
    try:
        account = await store.authenticate(request.username, request.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return await _login_session(account.id, account.username)


@router.post("/auth/logout")
async def logout(
    session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> dict[str, bool]:
    """End the session."""
    if session_id is not None:
        await delete_session(session_id)
        discard_table(session_id)
    return {"ok": True}


@router.get("/me")
async def me(
    session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> AccountResponse:
    """Totals of the logged-in account."""
    try:
        user = await _session_user(session_id)
        account = await (await get_account_store()).get_account(user["id"])
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return AccountResponse.model_validate(account)


@router.post("/game/result")
async def record_result(
    request: ResultRequest,
    session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> ResultResponse:
    """Apply a finished round to the logged-in account."""
    try:
        user = await _session_user(session_id)
        store = await get_account_store()
        account = await store.record_result(
            user["id"],
            RoundOutcome(request.result),
            request.points_delta,
        )
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ResultResponse(points=account.points, wins=account.wins, losses=account.losses)
