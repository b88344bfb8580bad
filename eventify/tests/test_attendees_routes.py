import pytest
from eventify.crm.gateway import CRMError


def test_register_attendee(client, mock_crm, auth_header):
    mock_crm.register_attendee.return_value = ("Attendee registered successfully", "a0A100")

    payload = {"name": "Ann", "email": "ann@x.com", "eventId": "a0E1"}
    response = client.post("/api/attendees", json=payload, headers=auth_header("a01ANN"))

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data == {"id": "a0A100", "name": "Ann", "email": "ann@x.com", "eventId": "a0E1", "userId": "a01ANN"}
    mock_crm.register_attendee.assert_called_once_with(
        "a01ANN", {"name": "Ann", "email": "ann@x.com", "eventId": "a0E1"}
    )

def test_register_attendee_requires_token(client, mock_crm):
    response = client.post("/api/attendees", json={"name": "Ann", "email": "ann@x.com", "eventId": "a0E1"})
    assert response.status_code == 401
    mock_crm.register_attendee.assert_not_called()

def test_register_attendee_missing_fields(client, mock_crm, auth_header):
    response = client.post("/api/attendees", json={"name": "Ann"}, headers=auth_header())
    assert response.status_code == 400
    mock_crm.register_attendee.assert_not_called()

@pytest.mark.parametrize("email", ["ann", "ann@", "ann@x", "@x.com"])
def test_register_attendee_malformed_email(client, mock_crm, auth_header, email):
    payload = {"name": "Ann", "email": email, "eventId": "a0E1"}
    response = client.post("/api/attendees", json=payload, headers=auth_header())

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid Email"
    assert not mock_crm.method_calls

def test_register_attendee_already_registered(client, mock_crm, auth_header):
    mock_crm.register_attendee.side_effect = CRMError("Already registered for this event", status_code=409)

    payload = {"name": "Ann", "email": "ann@x.com", "eventId": "a0E1"}
    response = client.post("/api/attendees", json=payload, headers=auth_header())

    assert response.status_code == 409
    assert response.get_json() == {"error": "Already Registered", "message": "Already registered for this event"}

def test_register_attendee_event_full(client, mock_crm, auth_header):
    mock_crm.register_attendee.side_effect = CRMError("Event is at full capacity", status_code=400)

    payload = {"name": "Ann", "email": "ann@x.com", "eventId": "a0E1"}
    response = client.post("/api/attendees", json=payload, headers=auth_header())

    assert response.status_code == 400
    assert response.get_json()["error"] == "Registration Failed"

def test_list_attendees(client, mock_crm):
    mock_crm.list_attendees.return_value = [
        {"id": "a0A1", "name": "Ann"},
        {"id": "a0A2", "name": "Bob"},
    ]

    response = client.get("/api/attendees/a0E1")
    assert response.status_code == 200
    assert response.get_json()["data"]["total"] == 2
    mock_crm.list_attendees.assert_called_once_with("a0E1")

def test_list_my_registrations(client, mock_crm, auth_header):
    mock_crm.list_my_attendees.return_value = [{"id": "a0A1"}]

    response = client.get("/api/attendees/my", headers=auth_header("a01ANN"))
    assert response.status_code == 200
    mock_crm.list_my_attendees.assert_called_once_with("a01ANN")
    mock_crm.list_attendees.assert_not_called()

def test_cancel_registration(client, mock_crm, auth_header):
    mock_crm.cancel_attendee.return_value = "Registration cancelled"

    response = client.put("/api/attendees/cancel/a0A1", headers=auth_header("a01ANN"))
    assert response.status_code == 200
    assert response.get_json()["message"] == "Registration cancelled"
    mock_crm.cancel_attendee.assert_called_once_with("a01ANN", "a0A1")
    mock_crm.delete_attendee.assert_not_called()

def test_cancel_registration_requires_token(client, mock_crm):
    response = client.put("/api/attendees/cancel/a0A1")
    assert response.status_code == 401

def test_cancel_someone_elses_registration(client, mock_crm, auth_header):
    mock_crm.cancel_attendee.side_effect = CRMError("Not your registration", status_code=403)

    response = client.put("/api/attendees/cancel/a0A1", headers=auth_header("a01ANN"))
    assert response.status_code == 403

def test_delete_attendee(client, mock_crm):
    mock_crm.delete_attendee.return_value = None

    response = client.delete("/api/attendees/a0A1")
    assert response.status_code == 200
    data = response.get_json()
    assert data["message"] == "Attendee deleted successfully"
    assert data["data"] == {"id": "a0A1"}

def test_delete_attendee_not_found(client, mock_crm):
    mock_crm.delete_attendee.side_effect = CRMError("Attendee not found", status_code=404)

    response = client.delete("/api/attendees/a0A404")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not Found", "message": "Attendee not found"}

@pytest.mark.parametrize("overrides", [{"email": 42}, {"name": ["Ann"]}, {"eventId": 17}])
def test_register_attendee_rejects_non_string_fields(client, mock_crm, auth_header, overrides):
    payload = {"name": "Ann", "email": "ann@x.com", "eventId": "a0E1", **overrides}

    response = client.post("/api/attendees", json=payload, headers=auth_header())

    assert response.status_code == 400
    assert response.get_json()["error"] == "Bad Request"
    mock_crm.register_attendee.assert_not_called()

def test_register_attendee_rejects_non_object_body(client, mock_crm, auth_header):
    response = client.post("/api/attendees", json=["ann@x.com"], headers=auth_header())

    assert response.status_code == 400
    mock_crm.register_attendee.assert_not_called()
