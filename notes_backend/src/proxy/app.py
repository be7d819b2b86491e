import logging
from typing import Any, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from src.api.config import Settings, configure_logging, load_settings
from src.api.security import TOKEN_COOKIE, set_token_cookie

logger = logging.getLogger(__name__)


def _json_or_empty(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {}


def _error_message(data: Any, fallback: str) -> str:
    if isinstance(data, dict) and data.get("message"):
        return data["message"]
    return fallback


# PUBLIC_INTERFACE
class BackendClient:
    """
    Forwards browser calls to the notes API.
    The bearer token comes from the proxy's own HTTP-only cookie, never from client script.
    """

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def send(self, method: str, path: str, token: Optional[str] = None, json: Any = None) -> httpx.Response:
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport, timeout=self._timeout) as client:
            return await client.request(method, path, headers=headers, json=json)


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    return await request.json()


# PUBLIC_INTERFACE
def create_proxy_app(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    """Same-origin proxy in front of the notes API for the browser client."""
    backend = BackendClient(settings.api_url, transport=transport)
    app = FastAPI(title="Notes Client Proxy", version="1.0")

    async def forward(request: Request, method: str, path: str, fallback: str,
                      require_token: bool = True, success_status: Optional[int] = None) -> Response:
        token = request.cookies.get(TOKEN_COOKIE)
        if require_token and not token:
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED,
                                content={"message": "Not authenticated - No token found"})
        try:
            payload = await _read_json(request) if method in ("POST", "PUT") else None
            upstream = await backend.send(method, path, token=token, json=payload)
        except (httpx.HTTPError, ValueError):
            logger.exception("Proxy call %s %s failed", method, path)
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                                content={"message": "Internal server error"})

        data = _json_or_empty(upstream)
        if upstream.is_error:
            return JSONResponse(status_code=upstream.status_code,
                                content={"message": _error_message(data, fallback)})
        return JSONResponse(status_code=success_status or upstream.status_code, content=data)

    @app.post("/api/auth/login")
    async def login(request: Request):
        try:
            body = await _read_json(request) or {}
            upstream = await backend.send("POST", "/api/auth/login",
                                          json={"email": body.get("email"), "password": body.get("password")})
        except (httpx.HTTPError, ValueError, AttributeError):
            logger.exception("Proxy login failed")
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                                content={"message": "Internal server error"})

        data = _json_or_empty(upstream)
        if upstream.is_error:
            return JSONResponse(status_code=upstream.status_code,
                                content={"message": _error_message(data, "Login failed")})

        response = JSONResponse(content={"message": "Login successful"})
        set_token_cookie(response, data["token"], settings)
        return response

    @app.post("/api/auth/register")
    async def register(request: Request):
        return await forward(request, "POST", "/api/auth/register", "Registration failed", require_token=False)

    @app.post("/api/auth/logout")
    async def logout():
        response = JSONResponse(content={"message": "Logged out"})
        response.delete_cookie(TOKEN_COOKIE, path="/", httponly=True, samesite="strict")
        return response

    @app.get("/api/auth/profile")
    async def profile(request: Request):
        return await forward(request, "GET", "/api/auth/profile", "Failed to fetch profile")

    @app.delete("/api/auth/delete")
    async def delete_account(request: Request):
        response = await forward(request, "DELETE", "/api/auth/delete", "Failed to delete account")
        if response.status_code == status.HTTP_200_OK:
            response.delete_cookie(TOKEN_COOKIE, path="/", httponly=True, samesite="strict")
        return response

    @app.get("/api/notes")
    async def list_notes(request: Request):
        return await forward(request, "GET", "/api/notes", "Failed to fetch notes")

    @app.post("/api/notes")
    async def create_note(request: Request):
        return await forward(request, "POST", "/api/notes", "Failed to create note",
                             success_status=status.HTTP_201_CREATED)

    @app.get("/api/notes/{note_id}")
    async def get_note(note_id: str, request: Request):
        return await forward(request, "GET", f"/api/notes/{note_id}", "Failed to fetch note")

    @app.put("/api/notes/{note_id}")
    async def update_note(note_id: str, request: Request):
        return await forward(request, "PUT", f"/api/notes/{note_id}", "Failed to update note")

    @app.delete("/api/notes/{note_id}")
    async def delete_note(note_id: str, request: Request):
        return await forward(request, "DELETE", f"/api/notes/{note_id}", "Failed to delete note")

    @app.get("/ping")
    async def ping():
        try:
            upstream = await backend.send("GET", "/ping")
            data = _json_or_empty(upstream)
        except httpx.HTTPError:
            logger.exception("Backend ping failed")
            return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY,
                                content={"message": f"No answer from {backend.base_url}"})
        return {"message": f"Ping received from {backend.base_url} with message {data.get('msg')}"}

    return app


# PUBLIC_INTERFACE
def run() -> None:
    """Console entry point for the client proxy."""
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_proxy_app(settings), host=settings.host, port=settings.proxy_port)


if __name__ == "__main__":
    run()
