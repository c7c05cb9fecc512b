from conftest import auth


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Welcome to the Hausly API"}
    assert client.get("/health").json() == {"status": "healthy"}


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/api/nope")

    assert res.status_code == 404
    assert res.json() == {"success": False, "error": {"code": "NOT_FOUND", "message": "Not Found"}}


def test_missing_token_is_unauthorized(client):
    res = client.get("/api/bookings")

    assert res.status_code == 401
    assert res.json()["success"] is False
    assert res.json()["error"]["code"] == "UNAUTHORIZED"


def test_validation_errors_are_400(client, marketplace):
    res = client.post("/api/bookings", json={"serviceId": "x"}, headers=auth("cust1"))

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


def test_security_headers_on_api_but_not_health(client):
    api = client.get("/")
    health = client.get("/health")

    assert api.headers["X-Frame-Options"] == "DENY"
    assert api.headers["Cache-Control"] == "no-store"
    assert "X-Frame-Options" not in health.headers
