"""
CRM gateway: every outbound call to Salesforce goes through here.

Two kinds of endpoints are used:
- Custom Apex REST resources (/services/apexrest/<resource>) for profile,
  events and attendee registrations. These answer with an envelope
  {statusCode, message, data} where `data` may be a JSON string.
- The standard REST API (/services/data/vXX.X) for the user records that
  back registration, login and password changes.

Field names coming back from the CRM (Name, Email__c, startDate__c, ...) are
normalized to the camelCase schema the API exposes.
"""

import os
import json
import logging
from urllib.parse import urlsplit
from typing import Any, Dict, List, Optional, Tuple

import requests

from eventify.crm.session import CRMAuthError, CRMSession

PROFILE_RESOURCE = "profile"
EVENTS_RESOURCE = "events"
ATTENDEES_RESOURCE = "eventregister"

USER_OBJECT = "Custom_Users__c"
ATTENDEE_OBJECT = "Attandee__c"

API_VERSION = os.getenv("SF_API_VERSION", "59.0")

# Defaults applied when an event record leaves a field blank
DEFAULT_EVENT_STATUS = "Scheduled"
DEFAULT_EVENT_LOCATION = "Virtual"


class CRMError(Exception):
    """
    A failed CRM call.

    `status_code` is the status the CRM reported (envelope statusCode or HTTP
    status). It is None when the CRM was never reached or sent garbage.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


# --- NORMALIZATION ---
def _first(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def parse_data(data: Any) -> Any:
    """Decode an envelope `data` field that may arrive JSON-encoded."""
    if isinstance(data, str):
        try:
            return json.loads(data)
        except ValueError as e:
            raise CRMError(f"Malformed data in CRM response: {e}") from e
    return data


def normalize_event(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": _first(record, "Id", "id"),
        "name": _first(record, "Name", "name"),
        "startDate": _first(record, "startDate__c", "startDate"),
        "endDate": _first(record, "endDate__c", "endDate"),
        "description": _first(record, "Description__c", "description") or "",
        "status": _first(record, "Status__c", "status") or DEFAULT_EVENT_STATUS,
        "capacity": _first(record, "Capacity__c", "capacity"),
        "location": _first(record, "Location__c", "location") or DEFAULT_EVENT_LOCATION,
        "ownerId": _first(record, "Custom_Users__c", "ownerId"),
    }


def normalize_attendee(record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": _first(record, "Id", "attendeeId", "id"),
        "name": _first(record, "Name", "name"),
        "email": _first(record, "Email__c", "email"),
        "eventId": _first(record, "Event__c", "eventId"),
        "userId": _first(record, "Custom_Users__c", "OwnerId", "userId"),
        "status": _first(record, "Status__c", "status"),
        "createdDate": _first(record, "CreatedDate", "createdDate"),
    }


def normalize_user(record: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of a user record. Never includes the password hash."""
    return {
        "id": _first(record, "Id", "id"),
        "name": _first(record, "Name", "name"),
        "email": _first(record, "Email__c", "email"),
        "role": _first(record, "Role__c", "role"),
        "phone": _first(record, "Phone__c", "phone"),
    }


def soql_quote(value: str) -> str:
    """Quote a string literal for a SOQL WHERE clause."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _error_message(response: requests.Response) -> str:
    """Pull a human readable message out of a CRM error response."""
    try:
        body = response.json()
    except ValueError:
        return response.reason or f"CRM request failed with status {response.status_code}"

    # Standard REST API errors come as a list of {message, errorCode}
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return body[0].get("message") or response.reason
    if isinstance(body, dict):
        return body.get("message") or body.get("error_description") or response.reason
    return response.reason


def _is_expired_session(response: requests.Response) -> bool:
    if response.status_code != 401:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    if isinstance(body, list):
        return any(isinstance(e, dict) and e.get("errorCode") == "INVALID_SESSION_ID" for e in body)
    return isinstance(body, dict) and body.get("errorCode") == "INVALID_SESSION_ID"


class CRMGateway:
    """
    Builds authenticated requests against the CRM and unwraps the replies.

    The gateway holds the CRMSession by reference; when Salesforce answers
    with INVALID_SESSION_ID the session is refreshed and the call is
    replayed once.
    """

    def __init__(self, session: CRMSession, timeout: Optional[float] = None) -> None:
        self.session = session
        self.timeout = timeout if timeout is not None else session.timeout

    # --- URL & HEADER CONSTRUCTION ---
    def apex_url(self, resource: str, *parts: str) -> str:
        url = f"{self.session.instance_url}/services/apexrest/{resource}"
        for part in parts:
            url += f"/{part}"
        return url

    def data_url(self, *parts: str) -> str:
        return "/".join([f"{self.session.instance_url}/services/data/v{API_VERSION}", *parts])

    def headers(self, user_id: Optional[str] = None, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Service bearer token plus, for caller-scoped calls, the acting user's id.
        """
        headers = {
            "Authorization": f"Bearer {self.session.access_token}",
            "Content-Type": "application/json",
        }
        if user_id:
            headers["X-User-Id"] = str(user_id)
        if extra:
            headers.update(extra)
        return headers

    # --- TRANSPORT ---
    def _request(
        self,
        method: str,
        url_builder,
        user_id: Optional[str] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        Send one request, refreshing the session once on INVALID_SESSION_ID.

        `url_builder` is called per attempt since a refresh can move the
        instance URL.
        """
        try:
            self.session.ensure()
        except CRMAuthError as e:
            raise CRMError(str(e)) from e

        def send() -> requests.Response:
            url = url_builder()
            try:
                return requests.request(
                    method,
                    url,
                    headers=self.headers(user_id, extra_headers),
                    timeout=self.timeout,
                    **kwargs,
                )
            except requests.RequestException as e:
                # Exception text can echo the full URL, query string included
                logging.error(f"[CRM] {method} {urlsplit(url).path} failed: {type(e).__name__}")
                raise CRMError(f"Could not reach CRM ({type(e).__name__})") from e

        stale_token = self.session.access_token
        response = send()
        if _is_expired_session(response):
            try:
                self.session.refresh(stale_token)
            except CRMAuthError as e:
                raise CRMError(str(e)) from e
            response = send()

        if not response.ok:
            message = _error_message(response)
            logging.error(f"[CRM] {method} {urlsplit(response.url).path} -> {response.status_code}: {message}")
            raise CRMError(message, status_code=response.status_code)

        return response

    def call_apex(
        self,
        method: str,
        resource: str,
        *parts: str,
        user_id: Optional[str] = None,
        expected_status: int = 200,
        extra_headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> Tuple[Optional[str], Any]:
        """
        Call an Apex REST resource and unwrap its envelope.

        Returns:
            tuple: (message, data) with data already JSON-decoded.

        Raises:
            CRMError: HTTP failure, or an envelope whose statusCode differs
                      from `expected_status`.
        """
        response = self._request(
            method,
            lambda: self.apex_url(resource, *parts),
            user_id=user_id,
            extra_headers=extra_headers,
            **kwargs,
        )

        try:
            body = response.json()
        except ValueError as e:
            raise CRMError("CRM returned a non-JSON response") from e

        if not isinstance(body, dict):
            return None, body

        status = body.get("statusCode")
        if status is not None and status != expected_status:
            message = body.get("message") or f"CRM request failed with status {status}"
            logging.error(f"[CRM] {method} {resource} envelope status {status}: {message}")
            raise CRMError(message, status_code=status)

        return body.get("message"), parse_data(body.get("data"))

    def call_data_api(self, method: str, *parts: str, **kwargs: Any) -> Any:
        """Call the standard REST API; returns the decoded body or None for 204."""
        response = self._request(method, lambda: self.data_url(*parts), **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CRMError("CRM returned a non-JSON response") from e

    def query(self, soql: str) -> List[Dict[str, Any]]:
        body = self.call_data_api("GET", "query", params={"q": soql})
        return (body or {}).get("records", [])

    # --- USERS ---
    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        records = self.query(
            f"SELECT Id, Name, Email__c, Role__c, Phone__c, Password__c FROM {USER_OBJECT} "
            f"WHERE Email__c = {soql_quote(email)} LIMIT 1"
        )
        return records[0] if records else None

    def find_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        records = self.query(
            f"SELECT Id, Name, Email__c, Role__c, Phone__c, Password__c FROM {USER_OBJECT} "
            f"WHERE Id = {soql_quote(user_id)} LIMIT 1"
        )
        return records[0] if records else None

    def create_user(self, fields: Dict[str, Any]) -> str:
        """Insert a user record and return its new id."""
        body = self.call_data_api("POST", "sobjects", USER_OBJECT, json=fields)
        if not body or not body.get("success"):
            raise CRMError("Salesforce failed to create user")
        return body["id"]

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> None:
        self.call_data_api("PATCH", "sobjects", USER_OBJECT, user_id, json=fields)

    def user_has_attendees(self, user_id: str) -> bool:
        records = self.query(
            f"SELECT Id FROM {ATTENDEE_OBJECT} WHERE Custom_Users__c = {soql_quote(user_id)} LIMIT 1"
        )
        return bool(records)

    # --- PROFILE ---
    def get_profile(self, user_id: str) -> Dict[str, Any]:
        _, data = self.call_apex("GET", PROFILE_RESOURCE, user_id=user_id)
        return normalize_user(data) if isinstance(data, dict) else data

    def delete_user(self, user_id: str, force: bool = False) -> Optional[str]:
        """
        Delete the account. `force` asks the CRM to ignore linked attendee
        records.
        """
        params = {"force": "true"} if force else None
        message, _ = self.call_apex("DELETE", PROFILE_RESOURCE, user_id=user_id, params=params)
        return message

    # --- EVENTS ---
    def list_events(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        _, data = self.call_apex("GET", EVENTS_RESOURCE, user_id=user_id)
        return [normalize_event(record) for record in data or []]

    def create_event(self, user_id: str, payload: Dict[str, Any]) -> Optional[str]:
        """Create an event owned by `user_id`; returns the new event id."""
        _, data = self.call_apex(
            "POST", EVENTS_RESOURCE, user_id=user_id, expected_status=201, json=payload
        )
        return (data or {}).get("eventId")

    def update_event(self, user_id: str, event_id: str, payload: Dict[str, Any]) -> None:
        self.call_apex("PUT", EVENTS_RESOURCE, event_id, user_id=user_id, json=payload)

    def delete_event(self, user_id: str, event_id: str) -> None:
        self.call_apex("DELETE", EVENTS_RESOURCE, event_id, user_id=user_id)

    def list_event_attendees(self, event_id: str) -> List[Dict[str, Any]]:
        _, data = self.call_apex("GET", EVENTS_RESOURCE, event_id, "attendees")
        return [normalize_attendee(record) for record in data or []]

    # --- ATTENDEES ---
    def register_attendee(self, user_id: str, payload: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        """Returns (message, attendee_id)."""
        message, data = self.call_apex(
            "POST", ATTENDEES_RESOURCE, user_id=user_id, expected_status=201, json=payload
        )
        return message, (data or {}).get("attendeeId")

    def list_attendees(self, event_id: str) -> List[Dict[str, Any]]:
        _, data = self.call_apex("GET", ATTENDEES_RESOURCE, event_id)
        return [normalize_attendee(record) for record in data or []]

    def list_my_attendees(self, user_id: str) -> List[Dict[str, Any]]:
        _, data = self.call_apex("GET", ATTENDEES_RESOURCE, "my", user_id=user_id)
        return [normalize_attendee(record) for record in data or []]

    def cancel_attendee(self, user_id: str, attendee_id: str) -> Optional[str]:
        """Soft cancel: the CRM flips the registration status."""
        message, _ = self.call_apex("PUT", ATTENDEES_RESOURCE, attendee_id, user_id=user_id, json={})
        return message

    def delete_attendee(self, attendee_id: str) -> Optional[str]:
        message, _ = self.call_apex(
            "DELETE", ATTENDEES_RESOURCE, extra_headers={"X-Attandee-Id": str(attendee_id)}
        )
        return message


_gateway: Optional[CRMGateway] = None


def get_crm() -> CRMGateway:
    """
    Returns the process-wide gateway, creating it (and its session) on
    first use.
    """
    global _gateway
    if _gateway is None:
        _gateway = CRMGateway(CRMSession.from_env())
    return _gateway
