"""
HTTP client for the Eventify API.

Wraps every route with a method, keeps the bearer token returned by
register/login and attaches it to later requests. A 401 from the server
drops the stored token so the caller knows to log in again.

Usage:
    client = EventifyClient("http://localhost:6000")
    client.login_user({"email": "ann@x.com", "password": "secret1"})
    client.fetch_events()
"""

import os
import logging
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

DEFAULT_API_URL = "http://localhost:6000"


class APIError(Exception):
    """Non-2xx answer from the API, carrying its error envelope."""

    def __init__(self, status_code: int, error: str, message: str) -> None:
        super().__init__(f"{status_code} {error}: {message}")
        self.status_code = status_code
        self.error = error
        self.message = message


class EventifyClient:
    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: float = 30) -> None:
        base_url = base_url or os.getenv("EVENTIFY_API_URL", DEFAULT_API_URL)
        self.base_url = f"{base_url.rstrip('/')}/api"
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self.session.request(
            method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
        )

        if response.status_code == 401:
            # Token rejected or expired; force a fresh login
            self.token = None

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            error = body.get("error", response.reason) if isinstance(body, dict) else response.reason
            message = body.get("message", "") if isinstance(body, dict) else ""
            logging.debug(f"[Client] {method} {path} -> {response.status_code} {error}")
            raise APIError(response.status_code, error, message)

        return body

    def _store_token(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.token = body.get("token") or self.token
        return body

    def logout(self) -> None:
        self.token = None

    # --- AUTH ---
    def register_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._store_token(self._request("POST", "/auth/register", json=user_data))

    def login_user(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        return self._store_token(self._request("POST", "/auth/login", json=credentials))

    def get_user_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/profile")

    def edit_user_profile(self, profile_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", "/auth/profile", json=profile_data)

    def change_password(self, password_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", "/auth/change-password", json=password_data)

    def delete_user_account(self, force: bool = False) -> Dict[str, Any]:
        params = {"force": "true"} if force else None
        body = self._request("DELETE", "/auth/profile", params=params)
        self.token = None
        return body

    # --- EVENTS ---
    def fetch_events(self) -> Dict[str, Any]:
        return self._request("GET", "/events")

    def fetch_my_events(self) -> Dict[str, Any]:
        return self._request("GET", "/events/my-events")

    def get_event_by_id(self, event_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/events/{event_id}")

    def create_event(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/events", json=event_data)

    def update_event(self, event_id: str, event_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/events/{event_id}", json=event_data)

    def delete_event(self, event_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/events/{event_id}")

    def get_event_attendees(self, event_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/events/{event_id}/attendees")

    # --- ATTENDEES ---
    def register_attendee(self, attendee_data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/attendees", json=attendee_data)

    def fetch_event_attendees(self, event_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/attendees/{event_id}")

    def fetch_my_registrations(self) -> Dict[str, Any]:
        return self._request("GET", "/attendees/my")

    def cancel_attendee_registration(self, attendee_id: str) -> Dict[str, Any]:
        return self._request("PUT", f"/attendees/cancel/{attendee_id}")

    def delete_attendee(self, attendee_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/attendees/{attendee_id}")
