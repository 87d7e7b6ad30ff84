"""API contract: auth, RFC 9457 problem documents, request ids, catalogs, health."""

import re
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from herotime_api.auth.session_auth import get_auth_context
from herotime_api.main import app
from herotime_api.routers import health


def assert_problem_details(resp, expected_status: int) -> dict:
    content_type = resp.headers.get("content-type", "")
    assert content_type.startswith("application/problem+json"), content_type

    data = resp.json()
    for field in ("type", "title", "status", "detail", "instance"):
        assert field in data, f"Missing required field: {field}"
    assert data["status"] == expected_status
    assert re.match(r"^urn:herotime:trace:[A-Za-z0-9._:-]{8,}$", data["instance"])
    return data


# ============================================================================
# Session auth
# ============================================================================


@pytest.fixture
def real_auth_client(test_client: TestClient):
    """Client that exercises the real session dependency."""
    del app.dependency_overrides[get_auth_context]
    return test_client


def test_missing_bearer_is_401(real_auth_client: TestClient) -> None:
    response = real_auth_client.get("/api/generations")

    data = assert_problem_details(response, 401)
    assert data["code"] == "UNAUTHORIZED"
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_rejected_token_is_401(real_auth_client: TestClient) -> None:
    supabase = MagicMock()
    supabase.auth.get_user.side_effect = Exception("JWT expired")

    with patch("herotime_api.auth.session_auth.get_supabase_client", return_value=supabase):
        response = real_auth_client.get(
            "/api/generations", headers={"Authorization": "Bearer expired.jwt.token"}
        )

    data = assert_problem_details(response, 401)
    assert "expired" in data["detail"]


def test_valid_token_resolves_user(real_auth_client: TestClient) -> None:
    supabase = MagicMock()
    supabase.auth.get_user.return_value.user.id = "user-2222"
    supabase.auth.get_user.return_value.user.email = "other@example.com"

    with patch("herotime_api.auth.session_auth.get_supabase_client", return_value=supabase):
        response = real_auth_client.get(
            "/api/subscription", headers={"Authorization": "Bearer good.jwt.token"}
        )

    assert response.status_code == 200
    assert response.json() == {"subscription": None}
    supabase.auth.get_user.assert_called_once_with("good.jwt.token")


def test_plans_need_no_auth(real_auth_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRIPE_PUBLISHABLE_KEY", "pk_test_123")

    response = real_auth_client.get("/api/plans")

    assert response.status_code == 200
    body = response.json()
    assert [p["id"] for p in body["plans"]] == ["free", "pro", "premium"]
    assert [p["generationsLimit"] for p in body["plans"]] == [2, 150, 200]
    assert body["plans"][1]["highlighted"] is True
    assert body["publishableKey"] == "pk_test_123"


# ============================================================================
# Problem documents and request ids
# ============================================================================


def test_request_id_is_echoed(test_client: TestClient) -> None:
    response = test_client.get("/api/plans", headers={"X-Request-ID": "req-abc-12345"})

    assert response.headers["X-Request-ID"] == "req-abc-12345"


def test_request_id_is_generated(test_client: TestClient) -> None:
    response = test_client.get("/api/plans")

    assert len(response.headers["X-Request-ID"]) == 36


def test_problem_instance_uses_request_id(test_client: TestClient) -> None:
    response = test_client.post(
        "/api/delete-generation",
        json={"generationId": "missing"},
        headers={"X-Request-ID": "req-trace-0001"},
    )

    data = assert_problem_details(response, 404)
    assert data["instance"] == "urn:herotime:trace:req-trace-0001"
    assert data["type"].endswith("/generation-not-found")


def test_validation_error_is_400(test_client: TestClient) -> None:
    response = test_client.post("/api/delete-generation", json={})

    data = assert_problem_details(response, 400)
    assert data["code"] == "VALIDATION_ERROR"
    assert "generationId" in data["detail"]


def test_unknown_route_is_problem(test_client: TestClient) -> None:
    response = test_client.get("/api/nope")

    data = assert_problem_details(response, 404)
    assert data["title"] == "Not Found"


def test_unhandled_exception_is_500(test_client: TestClient) -> None:
    with patch(
        "herotime_api.routers.billing.SubscriptionReconciler.sync",
        side_effect=RuntimeError("kaboom"),
    ):
        response = test_client.post("/api/stripe/sync-subscription")

    data = assert_problem_details(response, 500)
    assert data["code"] == "INTERNAL_ERROR"
    assert data["detail"] == "An unexpected error occurred. Please try again later."


# ============================================================================
# Catalogs
# ============================================================================


def test_subscription_snapshot(test_client: TestClient, make_user) -> None:
    make_user(plan="pro", generations_used=3, generations_limit=150, scheduled_plan=None)

    response = test_client.get("/api/subscription")

    assert response.status_code == 200
    subscription = response.json()["subscription"]
    assert subscription["plan"] == "pro"
    assert subscription["generationsUsed"] == 3
    assert subscription["generationsLimit"] == 150


def test_templates_catalog(test_client: TestClient, s3_mock: MagicMock) -> None:
    pages = {
        "": [{"CommonPrefixes": [{"Prefix": "retro/"}]}],
        "retro/": [{"Contents": [{"Key": "retro/Pixel_Knight.png"}]}],
    }
    s3_mock.get_paginator.return_value.paginate.side_effect = (
        lambda Bucket, Prefix, Delimiter: iter(pages.get(Prefix, [{}]))
    )

    response = test_client.get("/api/templates")

    assert response.status_code == 200
    category = response.json()["categories"][0]
    assert (category["id"], category["name"]) == ("retro", "Retro & Nostalgic")
    assert category["templates"][0]["id"] == "pixel-knight"


def test_props_catalog(test_client: TestClient, s3_mock: MagicMock) -> None:
    pages = {
        "": [{"CommonPrefixes": [{"Prefix": "head/"}]}],
        "head/": [{"Contents": [{"Key": "head/Viking_Helmet.png"}]}],
    }
    s3_mock.get_paginator.return_value.paginate.side_effect = (
        lambda Bucket, Prefix, Delimiter: iter(pages.get(Prefix, [{}]))
    )

    response = test_client.get("/api/props")

    assert response.status_code == 200
    category = response.json()["categories"][0]
    assert (category["id"], category["iconName"]) == ("head", "head")
    assert category["props"][0] == {
        "id": "viking-helmet",
        "name": "Viking Helmet",
        "image": "https://proj.supabase.co/storage/v1/object/public/hero_props/head/Viking_Helmet.png",
        "positions": ["head"],
    }


# ============================================================================
# Health
# ============================================================================


def test_health_always_200(test_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(health, "check_database", lambda: "up")
    monkeypatch.setattr(health, "check_redis", lambda: "down: connection refused")

    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json()["services"]["redis"].startswith("down")


def test_readyz_503_when_dependency_down(
    test_client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(health, "check_database", lambda: "down: timeout")
    monkeypatch.setattr(health, "check_redis", lambda: "up")

    response = test_client.get("/readyz")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_readyz_ready(test_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(health, "check_database", lambda: "up")
    monkeypatch.setattr(health, "check_redis", lambda: "up")

    response = test_client.get("/readyz")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
