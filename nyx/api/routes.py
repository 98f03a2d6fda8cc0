"""
FastAPI routes for linking a Fitbit account.
"""

from __future__ import annotations

import html
import logging
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from nyx.core.errors import CredentialStoreError, InvalidStateError, TokenExchangeError
from nyx.dependencies import get_authorization_handshake
from nyx.schemas import AccountLinkResult, OAuthCallbackPayload

router = APIRouter()
logger = logging.getLogger(__name__)


_LOGIN_PAGE = """<!DOCTYPE html>
<html>
  <head><title>nyx</title></head>
  <body>
    <h1>Get your sleep summary every morning</h1>
    <form action="/login" method="get">
      <input type="hidden" name="state" value="{state}">
      <label>Email <input type="email" name="email" required></label>
      <button type="submit">Connect Fitbit</button>
    </form>
  </body>
</html>
"""


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/", response_class=HTMLResponse)
async def index(
    handshake: Annotated[Any, Depends(get_authorization_handshake)],
) -> HTMLResponse:
    """Render the login form with a fresh state value."""
    state = handshake.issue_state()
    return HTMLResponse(_LOGIN_PAGE.format(state=html.escape(state)))


@router.api_route("/login", methods=["GET", "POST"])
async def start_fitbit_login(
    request: Request,
    handshake: Annotated[Any, Depends(get_authorization_handshake)],
    email: str = Query("", description="Address the morning digest is sent to."),
    state: Optional[str] = Query(None, description="State value from the login form."),
) -> RedirectResponse:
    """Record the pending login and redirect to the Fitbit consent screen."""
    try:
        redirect = handshake.begin_login(email, state=state)
    except ValueError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except CredentialStoreError as exc:
        logger.error("Could not save pending login: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Error saving user."
        ) from exc

    status_code = (
        HTTPStatus.SEE_OTHER if request.method == "POST" else HTTPStatus.TEMPORARY_REDIRECT
    )
    return RedirectResponse(url=redirect.authorization_url, status_code=status_code)


@router.get("/callback", response_model=AccountLinkResult, status_code=HTTPStatus.OK)
async def handle_fitbit_callback(
    handshake: Annotated[Any, Depends(get_authorization_handshake)],
    state: str = Query("", description="OAuth state token."),
    code: Optional[str] = Query(None, description="Authorization code returned by Fitbit."),
    error: Optional[str] = Query(None, description="Error returned when consent is denied."),
) -> AccountLinkResult:
    """Complete the OAuth exchange and store the credential."""
    payload = OAuthCallbackPayload(state=state, code=code, error=error)
    if payload.error:
        logger.info("Fitbit reported an authorization error: %s", payload.error)

    try:
        record = await handshake.complete_login(payload.state, payload.code)
    except InvalidStateError as exc:
        logger.warning("HTTP 401 - %s", exc)
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc)) from exc
    except (TokenExchangeError, CredentialStoreError) as exc:
        logger.error("Fitbit callback failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
        ) from exc

    return AccountLinkResult(email=record.identity)


__all__ = ["router"]
