from fastapi.testclient import TestClient

from ballotbox.main import (
    ALLOWED_ORIGINS,
    SECURITY_HEADERS,
    STRICT_TRANSPORT_SECURITY,
    app,
)

client = TestClient(app)

def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_security_headers_present():
    response = client.get("/health")
    for header, value in SECURITY_HEADERS.items():
        assert response.headers.get(header) == value
    assert response.headers.get("Strict-Transport-Security") == STRICT_TRANSPORT_SECURITY


def test_cors_preflight_allows_known_origin():
    origin = ALLOWED_ORIGINS[0]
    response = client.options(
        "/health",
        headers={
            "origin": origin,
            "access-control-request-method": "POST",
            "access-control-request-headers": "authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == origin
    assert response.headers.get("access-control-allow-credentials") == "true"
    allow_methods = response.headers.get("access-control-allow-methods", "").upper()
    assert "GET" in allow_methods and "POST" in allow_methods and "OPTIONS" in allow_methods


def test_simple_get_disallowed_origin_omits_acao():
    res = client.get("/health", headers={"Origin": "https://evil.com"})
    assert res.status_code == 200
    # No ACAO header => browsers will block cross-origin access
    assert "access-control-allow-origin" not in {k.lower(): v for k, v in res.headers.items()}


def test_put_and_delete_are_rejected():
    for method in ("put", "delete"):
        r = getattr(client, method)("/ballots/any/vote")
        assert r.status_code == 405
        assert r.headers.get("Allow") == "GET, POST, OPTIONS"


def test_post_body_must_be_json():
    r = client.post(
        "/ballots/any/vote",
        content=b"answers=1",
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert r.status_code == 415


def test_bodyless_post_is_not_blocked_by_content_type_check():
    # Reaches auth instead of being rejected as unsupported media.
    r = client.post("/admin/repair")
    assert r.status_code == 401
