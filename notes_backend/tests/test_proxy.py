import httpx
import pytest
from fastapi.testclient import TestClient

from src.proxy.app import create_proxy_app


@pytest.fixture
def proxy(settings, app):
    transport = httpx.ASGITransport(app=app)
    with TestClient(create_proxy_app(settings, transport=transport)) as c:
        yield c


def login(proxy, email="john@x.com", password="secret12"):
    return proxy.post("/api/auth/login", json={"email": email, "password": password})


def test_register_is_relayed(proxy):
    resp = proxy.post("/api/auth/register", json={"name": "John", "email": "John@x.com", "password": "secret12"})
    assert resp.status_code == 201
    assert resp.json()["email"] == "john@x.com"


def test_login_keeps_token_in_http_only_cookie(proxy, john):
    resp = login(proxy)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Login successful"}
    cookie = resp.headers["set-cookie"].lower()
    assert cookie.startswith("token=")
    assert "httponly" in cookie
    assert "samesite=strict" in cookie
    assert proxy.cookies.get("token")


def test_login_failure_is_relayed(proxy, john):
    resp = login(proxy, password="wrong-one")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid credentials"}
    assert "set-cookie" not in resp.headers


def test_notes_need_the_cookie(proxy):
    resp = proxy.get("/api/notes")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Not authenticated - No token found"}


def test_note_crud_through_proxy(proxy, john):
    login(proxy)

    resp = proxy.post("/api/notes", json={"title": "T", "content": "C"})
    assert resp.status_code == 201
    note = resp.json()
    assert note["userId"] == john["_id"]

    assert [n["_id"] for n in proxy.get("/api/notes").json()] == [note["_id"]]

    resp = proxy.put(f"/api/notes/{note['_id']}", json={"content": "changed"})
    assert resp.status_code == 200
    assert resp.json()["content"] == "changed"

    resp = proxy.delete(f"/api/notes/{note['_id']}")
    assert resp.status_code == 200

    resp = proxy.get(f"/api/notes/{note['_id']}")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Note not found"}


def test_profile_and_logout(proxy, john):
    login(proxy)
    assert proxy.get("/api/auth/profile").json()["_id"] == john["_id"]

    resp = proxy.post("/api/auth/logout")
    assert resp.status_code == 200
    assert not proxy.cookies.get("token")
    assert proxy.get("/api/auth/profile").status_code == 401


def test_backend_unreachable(settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with TestClient(create_proxy_app(settings, transport=httpx.MockTransport(refuse))) as c:
        c.cookies.set("token", "anything")
        resp = c.get("/api/notes")
    assert resp.status_code == 500
    assert resp.json() == {"message": "Internal server error"}


def test_ping_reports_backend_answer(proxy, settings):
    resp = proxy.get("/ping")
    assert resp.status_code == 200
    assert resp.json() == {"message": f"Ping received from {settings.api_url} with message Ping!"}
