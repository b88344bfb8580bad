"""
Quick API smoke test for Eventify against a running server and a live CRM.
Tests: register, login, create event, list events, register attendee.

    python testing/smoke_api.py
"""

from eventify.client.api import EventifyClient

BASE = "http://localhost:6000"

client = EventifyClient(BASE)

# 1) Register an organizer (token is kept by the client)
r = client.register_user({
    "name": "Smoke Organizer",
    "email": "smoke.organizer@example.com",
    "password": "pass1234",
    "role": "Organizer"
})
print("REGISTER:", r["user"])

# 2) Login with same credentials
r = client.login_user({
    "email": "smoke.organizer@example.com",
    "password": "pass1234"
})
print("LOGIN:", r["user"])

# 3) Create a new event
r = client.create_event({
    "name": "First Test Event",
    "description": "Simple test",
    "startDate": "2025-10-20T10:00:00Z",
    "endDate": "2025-10-20T11:00:00Z",
    "location": "Room 101"
})
print("CREATE EVENT:", r["data"])
event_id = r["data"]["id"]

# 4) List all events
r = client.fetch_events()
print("LIST EVENTS:", r["data"]["total"])

# 5) Register for it
r = client.register_attendee({
    "name": "Smoke Organizer",
    "email": "smoke.organizer@example.com",
    "eventId": event_id
})
print("REGISTER ATTENDEE:", r["data"])
