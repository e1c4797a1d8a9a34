#!/usr/bin/env python3
"""
Mock Metabase backend for trying the proxy locally.

Implements just enough of the Metabase API for the proxy's session handling:
- POST /api/session      - login, returns {"id": <session>}
- GET  /api/user/current - 200 for a live session, 401 otherwise
- anything else          - echoes the request if the session is live

Sessions expire after SESSION_TTL seconds so refreshes can be observed.

Run with: python scripts/mock_metabase.py
Listens on: http://localhost:3000
"""
from __future__ import annotations

import os
import time
import uuid
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

app = FastAPI(title="Mock Metabase", description="Test backend for the Metabase API proxy")

EMAIL = os.getenv("MOCK_METABASE_EMAIL", "admin@example.com")
PASSWORD = os.getenv("MOCK_METABASE_PASSWORD", "secret")
SESSION_TTL = int(os.getenv("MOCK_METABASE_SESSION_TTL", 60))

# session id -> expiry timestamp
sessions: dict[str, float] = {}


def log_request(endpoint: str, session: str | None):
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] {endpoint} | session: {session or '-'}")


def is_live(session: str | None) -> bool:
    return session is not None and sessions.get(session, 0) > time.time()


@app.post("/api/session")
async def login(request: Request):
    data = await request.json()
    if data.get("username") != EMAIL or data.get("password") != PASSWORD:
        log_request("LOGIN REJECTED", None)
        return JSONResponse({"errors": {"password": "did not match stored password"}}, status_code=401)
    
    session = str(uuid.uuid4())
    sessions[session] = time.time() + SESSION_TTL
    log_request("LOGIN", session)
    return JSONResponse({"id": session})


@app.get("/api/user/current")
async def current_user(request: Request):
    session = request.headers.get("x-metabase-session")
    log_request("PROBE", session)
    if not is_live(session):
        return JSONResponse({"error": "Unauthenticated"}, status_code=401)
    return JSONResponse({"id": 1, "email": EMAIL})


@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
async def echo(request: Request, path: str):
    """Echo the request back so forwarded headers can be inspected."""
    session = request.headers.get("x-metabase-session")
    log_request(f"{request.method} /{path}", session)
    if not is_live(session):
        return JSONResponse({"error": "Unauthenticated"}, status_code=401)
    
    body = await request.body()
    return JSONResponse({
        "method": request.method,
        "path": f"/{path}",
        "query": str(request.url.query),
        "headers": dict(request.headers),
        "body": body.decode(errors="replace"),
    })


if __name__ == "__main__":
    print("\n📊 Mock Metabase")
    print("=" * 50)
    print("Listening on http://localhost:3000")
    print(f"Login: {EMAIL} / {PASSWORD}, sessions live {SESSION_TTL}s")
    print("=" * 50 + "\n")
    
    uvicorn.run(app, host="127.0.0.1", port=3000, log_level="warning")
