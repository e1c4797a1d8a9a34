"""
Proxy router - catch-all route that authenticates against the backend and forwards.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response

from metabase_proxy.errors import AuthError, UpstreamError
from metabase_proxy.logging import get_logger
from metabase_proxy.services.proxy import CORS_HEADERS
from metabase_proxy.state import app_state

logger = get_logger(__name__)

router = APIRouter(tags=["proxy"])

async def authenticate() -> str:
    """
    Authentication gate: make sure a valid backend session is held.
    
    Returns:
        The session token to attach to the forwarded request
        
    Raises:
        HTTPException: 500 if the session cannot be validated or refreshed
    """
    if app_state.session_manager is None:
        logger.error("Session manager not initialized")
        raise HTTPException(status_code=500, detail="Internal server error", headers=CORS_HEADERS)

    try:
        return await app_state.session_manager.ensure_valid()
    except AuthError as e:
        logger.error(f"Backend login failed: {e}")
    except UpstreamError as e:
        logger.error(f"Backend session check failed: {e}")
    raise HTTPException(status_code=500, detail="Internal server error", headers=CORS_HEADERS)


async def proxy(request: Request) -> Response:
    """
    Forward any request to the backend.
    
    **Flow:**
    1. Validate (or refresh) the backend session
    2. Forward the request with the session header attached
    3. Stream the backend response back with CORS headers
    """
    token = await authenticate()

    if app_state.forwarder is None:
        logger.error("Forwarder not initialized")
        raise HTTPException(status_code=500, detail="Internal server error", headers=CORS_HEADERS)

    return await app_state.forwarder.forward(request, token)


# No method list: every HTTP method reaches the gate
router.add_route("/{path:path}", proxy, include_in_schema=False)

