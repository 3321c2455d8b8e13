"""Tests for the admission API routes.

All /v1 routes require the X-API-Key header (see ``api_key_headers``). The
``app`` fixture builds a fresh application whose limiters run on a fake
clock, so every test starts with empty buckets.
"""

from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import AppSettings, RateLimitSettings, Settings


CHECK_URL = "/v1/admission/checkout/check"


def test_health_reports_running_sweepers(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["sweepers"] == {"admin": True, "checkout": True, "webhook": True}


def test_lifespan_stops_sweepers_on_shutdown(app) -> None:
    with TestClient(app):
        pass

    assert not any(limiter.is_sweeping for _, limiter in app.state.rate_limiters)


def test_check_requires_api_key(client: TestClient) -> None:
    resp = client.post(CHECK_URL, json={"identifier": "203.0.113.7"})

    assert resp.status_code == 403
    assert "Missing API key" in resp.json()["detail"]


def test_check_rejects_invalid_api_key(client: TestClient) -> None:
    resp = client.post(
        CHECK_URL,
        json={"identifier": "203.0.113.7"},
        headers={"X-API-Key": "wrong"},
    )

    assert resp.status_code == 403


def test_checkout_burst_denial_and_refill(client, api_key_headers, fake_clock) -> None:
    body = {"identifier": "203.0.113.7"}

    remaining = []
    for _ in range(5):
        resp = client.post(CHECK_URL, json=body, headers=api_key_headers)
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        remaining.append(resp.json()["remaining"])
    assert remaining == [4, 3, 2, 1, 0]

    denied = client.post(CHECK_URL, json=body, headers=api_key_headers)
    assert denied.status_code == 429
    error = denied.json()["error"]
    assert error["code"] == "rate_limit_exceeded"
    assert error["details"]["remaining"] == 0
    assert denied.headers["Retry-After"] == "60"
    assert denied.headers["X-RateLimit-Remaining"] == "0"
    assert denied.headers["X-RateLimit-Reset"] == str(1_000_000 + 60_000)

    fake_clock.advance(60)
    resp = client.post(CHECK_URL, json=body, headers=api_key_headers)
    assert resp.status_code == 200
    assert resp.json()["remaining"] == 4


def test_check_success_headers(client, api_key_headers) -> None:
    resp = client.post(CHECK_URL, json={"identifier": "a"}, headers=api_key_headers)

    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "4"
    assert "Retry-After" not in resp.headers
    assert resp.json() == {
        "scope": "checkout",
        "success": True,
        "remaining": 4,
        "reset": 1_060_000,
        "limit": 5,
    }


def test_check_without_identifier_uses_client_address(client, api_key_headers) -> None:
    client.post(CHECK_URL, headers=api_key_headers)
    client.post(CHECK_URL, json={}, headers=api_key_headers)

    resp = client.post(
        CHECK_URL, json={"identifier": "testclient"}, headers=api_key_headers
    )

    assert resp.json()["remaining"] == 2


def test_check_accepts_empty_identifier(client, api_key_headers) -> None:
    first = client.post(CHECK_URL, json={"identifier": ""}, headers=api_key_headers)
    other = client.post(CHECK_URL, json={"identifier": "x"}, headers=api_key_headers)

    assert first.status_code == 200
    assert first.json()["remaining"] == 4
    assert other.json()["remaining"] == 4


def test_forwarded_for_used_when_proxy_trusted(fake_clock, api_key_headers) -> None:
    cfg = Settings(app=AppSettings(trust_proxy_headers=True))

    with TestClient(create_app(cfg, clock=fake_clock.time)) as client:
        first = client.post(
            CHECK_URL,
            headers={**api_key_headers, "X-Forwarded-For": "198.51.100.1, 10.0.0.1"},
        )
        second = client.post(
            CHECK_URL,
            headers={**api_key_headers, "X-Forwarded-For": "198.51.100.2"},
        )
        explicit = client.post(
            CHECK_URL, json={"identifier": "198.51.100.1"}, headers=api_key_headers
        )

    assert first.json()["remaining"] == 4
    assert second.json()["remaining"] == 4
    assert explicit.json()["remaining"] == 3


def test_forwarded_for_ignored_by_default(client, api_key_headers) -> None:
    for forwarded in ("198.51.100.1", "198.51.100.2"):
        client.post(
            CHECK_URL, headers={**api_key_headers, "X-Forwarded-For": forwarded}
        )

    resp = client.post(
        CHECK_URL, json={"identifier": "testclient"}, headers=api_key_headers
    )

    assert resp.json()["remaining"] == 2


def test_unknown_scope_returns_404(client, api_key_headers) -> None:
    resp = client.post(
        "/v1/admission/coupons/check", json={"identifier": "a"}, headers=api_key_headers
    )

    assert resp.status_code == 404
    error = resp.json()["error"]
    assert error["code"] == "unknown_rate_limit_scope"
    assert error["details"]["available_scopes"] == ["admin", "checkout", "webhook"]


def test_describe_and_list_limiters(client, api_key_headers) -> None:
    client.post(CHECK_URL, json={"identifier": "a"}, headers=api_key_headers)

    described = client.get("/v1/admission/checkout", headers=api_key_headers)
    listed = client.get("/v1/admission", headers=api_key_headers)

    assert described.status_code == 200
    assert described.json() == {
        "scope": "checkout",
        "interval_ms": 60_000,
        "max_requests": 5,
        "buckets": 1,
    }
    assert [s["scope"] for s in listed.json()["scopes"]] == ["admin", "checkout", "webhook"]


def test_reset_bucket_makes_identifier_fresh(client, api_key_headers) -> None:
    body = {"identifier": "203.0.113.7"}
    for _ in range(6):
        client.post(CHECK_URL, json=body, headers=api_key_headers)

    resp = client.delete(
        "/v1/admission/checkout/buckets/203.0.113.7", headers=api_key_headers
    )
    assert resp.status_code == 204

    after = client.post(CHECK_URL, json=body, headers=api_key_headers)
    assert after.status_code == 200
    assert after.json()["remaining"] == 4


def test_reset_bucket_keeps_slashes_in_identifier(client, api_key_headers) -> None:
    slashed = {"identifier": "tenant/42"}
    plain = {"identifier": "42"}
    client.post(CHECK_URL, json=slashed, headers=api_key_headers)
    client.post(CHECK_URL, json=plain, headers=api_key_headers)

    resp = client.delete(
        "/v1/admission/checkout/buckets/tenant/42", headers=api_key_headers
    )
    assert resp.status_code == 204

    assert client.post(CHECK_URL, json=slashed, headers=api_key_headers).json()[
        "remaining"
    ] == 4
    assert client.post(CHECK_URL, json=plain, headers=api_key_headers).json()[
        "remaining"
    ] == 3


def test_reset_by_body_reaches_empty_identifier(client, api_key_headers) -> None:
    empty = {"identifier": ""}
    for _ in range(6):
        client.post(CHECK_URL, json=empty, headers=api_key_headers)
    client.post(CHECK_URL, json={"identifier": "other"}, headers=api_key_headers)

    resp = client.post(
        "/v1/admission/checkout/reset", json=empty, headers=api_key_headers
    )
    assert resp.status_code == 204

    after = client.post(CHECK_URL, json=empty, headers=api_key_headers)
    assert after.status_code == 200
    assert after.json()["remaining"] == 4
    described = client.get("/v1/admission/checkout", headers=api_key_headers)
    assert described.json()["buckets"] == 2


def test_reset_by_body_requires_identifier(client, api_key_headers) -> None:
    resp = client.post("/v1/admission/checkout/reset", json={}, headers=api_key_headers)

    assert resp.status_code == 422


def test_clear_buckets(client, api_key_headers) -> None:
    for identifier in ("a", "b", "c"):
        client.post(CHECK_URL, json={"identifier": identifier}, headers=api_key_headers)

    resp = client.delete("/v1/admission/checkout/buckets", headers=api_key_headers)
    assert resp.status_code == 204

    described = client.get("/v1/admission/checkout", headers=api_key_headers)
    assert described.json()["buckets"] == 0


def test_admin_routes_are_throttled(fake_clock, api_key_headers) -> None:
    cfg = Settings(rate_limit=RateLimitSettings(admin_max_requests=2))
    app = create_app(cfg, clock=fake_clock.time)

    with TestClient(app) as client:
        ok = [client.get("/v1/admission/checkout", headers=api_key_headers) for _ in range(2)]
        throttled = client.get("/v1/admission/checkout", headers=api_key_headers)

    assert [r.status_code for r in ok] == [200, 200]
    assert ok[0].headers["X-RateLimit-Limit"] == "2"
    assert ok[1].headers["X-RateLimit-Remaining"] == "0"
    assert throttled.status_code == 429
    assert throttled.json()["error"]["details"]["scope"] == "admin"
    assert throttled.headers["Retry-After"] == "60"


def test_admin_throttle_disabled(fake_clock, api_key_headers) -> None:
    cfg = Settings(rate_limit=RateLimitSettings(enabled=False, admin_max_requests=1))

    with TestClient(create_app(cfg, clock=fake_clock.time)) as client:
        responses = [
            client.get("/v1/admission/checkout", headers=api_key_headers)
            for _ in range(3)
        ]

    assert [r.status_code for r in responses] == [200, 200, 200]
    assert all("X-RateLimit-Limit" not in r.headers for r in responses)


def test_headers_can_be_disabled(fake_clock, api_key_headers) -> None:
    cfg = Settings(rate_limit=RateLimitSettings(include_headers=False))
    body = {"identifier": "a"}

    with TestClient(create_app(cfg, clock=fake_clock.time)) as client:
        allowed = [
            client.post(CHECK_URL, json=body, headers=api_key_headers)
            for _ in range(5)
        ]
        denied = client.post(CHECK_URL, json=body, headers=api_key_headers)
        admin = client.get("/v1/admission/checkout", headers=api_key_headers)

    assert all("X-RateLimit-Limit" not in r.headers for r in allowed)
    assert denied.status_code == 429
    assert "Retry-After" not in denied.headers
    assert admin.status_code == 200
    assert "X-RateLimit-Limit" not in admin.headers


def test_each_app_follows_its_own_settings(fake_clock, api_key_headers) -> None:
    quiet = create_app(
        Settings(
            rate_limit=RateLimitSettings(
                enabled=False, include_headers=False, admin_max_requests=1
            )
        ),
        clock=fake_clock.time,
    )
    strict = create_app(
        Settings(rate_limit=RateLimitSettings(admin_max_requests=1)),
        clock=fake_clock.time,
    )

    with TestClient(quiet) as quiet_client, TestClient(strict) as strict_client:
        quiet_codes = [
            quiet_client.get("/v1/admission/checkout", headers=api_key_headers).status_code
            for _ in range(3)
        ]
        strict_codes = [
            strict_client.get("/v1/admission/checkout", headers=api_key_headers).status_code
            for _ in range(3)
        ]

    assert quiet.state.settings.rate_limit.enabled is False
    assert quiet_codes == [200, 200, 200]
    assert strict_codes == [200, 429, 429]


def test_openapi_declares_api_key_and_exempts_health(client) -> None:
    schema = client.get("/openapi.json").json()

    assert "ApiKeyAuth" in schema["components"]["securitySchemes"]
    assert schema["paths"]["/health"]["get"]["security"] == []
    assert "429" in schema["paths"]["/v1/admission/{scope}/check"]["post"]["responses"]
