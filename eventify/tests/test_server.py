from eventify.gateway.server import create_app


def test_health_routes():
    client = create_app().test_client()

    assert client.get("/").get_json() == {"status": "gateway_ok"}
    assert client.get("/health").get_json() == {"status": "ok"}

def test_blueprints_mounted_under_api(mocker):
    crm = mocker.Mock()
    crm.list_events.return_value = []
    mocker.patch("eventify.events_service.routes.get_crm", return_value=crm)

    client = create_app().test_client()
    response = client.get("/api/events")

    assert response.status_code == 200
    assert response.get_json()["data"] == {"total": 0, "events": []}

def test_unknown_route_uses_error_envelope():
    client = create_app().test_client()
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json()["error"] == "Not Found"

def test_unexpected_exception_is_500(mocker):
    crm = mocker.Mock()
    crm.list_events.side_effect = RuntimeError("kaboom")
    mocker.patch("eventify.events_service.routes.get_crm", return_value=crm)

    client = create_app().test_client()
    response = client.get("/api/events")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Server Error", "message": "An unexpected error occurred"}

def test_cors_allows_client_origin(monkeypatch):
    monkeypatch.setenv("CLIENT_URL", "http://localhost:5173")
    client = create_app().test_client()

    response = client.options(
        "/api/events",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "GET"},
    )

    assert response.headers.get("Access-Control-Allow-Origin") == "http://localhost:5173"
