"""
Proxy service - forwards requests to the backend with the session token attached.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from fastapi import Request, Response
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from metabase_proxy.logging import get_logger
from metabase_proxy.services.session import SESSION_HEADER

logger = get_logger(__name__)

# Hop-by-hop headers that should not be forwarded in either direction
HOP_BY_HOP_HEADERS = frozenset({
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
})

CORS_HEADERS: Dict[str, str] = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "*",
    "access-control-allow-headers": "*",
    "access-control-allow-credentials": "true",
}

ERROR_BODY = "Something went wrong."


def _request_headers(headers: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    skip = HOP_BY_HOP_HEADERS | {"host"}
    return [(k, v) for k, v in headers if k.lower() not in skip]


def raw_target(request: Request) -> str:
    """Path and query exactly as the client sent them, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # Some servers include the query string in raw_path
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = quote(request.scope["path"], safe="/:@!$&'()*+,;=~")
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


def _has_body(request: Request) -> bool:
    return "content-length" in request.headers or "transfer-encoding" in request.headers


class ProxyForwarder:
    """
    Streams inbound requests to the backend and the backend's responses back.
    
    The before_forward, after_forward and on_forward_error hooks run at fixed
    points of forward() and can be overridden by subclasses.
    """

    def __init__(self, target: str, client: httpx.AsyncClient):
        self.target = target.rstrip("/")
        self.client = client

    def before_forward(self, headers: List[Tuple[str, str]], token: Optional[str]) -> List[Tuple[str, str]]:
        """Attach the session token; clients never get to supply their own."""
        headers = [(k, v) for k, v in headers if k.lower() != SESSION_HEADER.lower()]
        if token:
            headers.append((SESSION_HEADER, token))
        return headers

    def after_forward(self, response: Response) -> Response:
        """Apply the proxy's CORS policy, overriding anything the backend sent."""
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    def on_forward_error(self, error: Exception, request: Request) -> Response:
        logger.error(f"Proxy error for {request.method} {raw_target(request)}: {error!r}")
        return PlainTextResponse(ERROR_BODY, status_code=500)

    def build_url(self, request: Request) -> httpx.URL:
        return httpx.URL(f"{self.target}{raw_target(request)}")

    async def forward(self, request: Request, token: Optional[str]) -> Response:
        """
        Forward `request` to the backend and stream the answer back.
        
        Args:
            request: The inbound client request
            token: Session token to attach, or None to send none
            
        Returns:
            A streaming response relaying the backend's status, headers and
            body, or a 500 if the backend could not be reached
        """
        headers = self.before_forward(_request_headers(request.headers.items()), token)
        upstream_request = self.client.build_request(
            request.method,
            self.build_url(request),
            headers=headers,
            content=request.stream() if _has_body(request) else None,
        )

        try:
            upstream_response = await self.client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            return self.on_forward_error(e, request)

        logger.debug(f"{request.method} {raw_target(request)} -> {upstream_response.status_code}")

        response = StreamingResponse(
            upstream_response.aiter_raw(),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        for name, value in upstream_response.headers.multi_items():
            if name.lower() not in HOP_BY_HOP_HEADERS:
                response.headers.append(name, value)
        return self.after_forward(response)
