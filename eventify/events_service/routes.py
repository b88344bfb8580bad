"""
Events service routes: create, read, update, delete events and list their
attendees. Events live in the CRM's `events` Apex resource.
"""

import logging
from datetime import datetime, timezone
from typing import Tuple, Dict, Any, Optional

from flask import Blueprint, request, jsonify, Response

from eventify.crm.gateway import get_crm, CRMGateway, DEFAULT_EVENT_LOCATION, DEFAULT_EVENT_STATUS
from eventify.gateway.errors import BadRequest, Forbidden, NotFound
from eventify.auth_service.utils import (
    MANAGER_ROLES,
    ROLE_ADMIN,
    current_user,
    ensure_role,
    json_body,
    login_required,
    text_field,
)

events_bp = Blueprint("events", __name__)

# --- CONSTANTS FOR VALIDATION ---
NAME_MAX_LENGTH = 80
VALID_STATUSES = ["Scheduled", "In Progress", "Completed"]
UPDATABLE_FIELDS = ["name", "startDate", "endDate", "description", "status", "capacity", "location"]


@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to a datetime object.
    Naive values are taken as UTC so they compare with aware ones.

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_capacity(value: Any) -> Optional[int]:
    """
    Capacity is optional; when present it must be a positive whole number
    (an int, or a string of digits from a form field).
    """
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise BadRequest("capacity must be a positive integer")
    return value


def _validate_dates(start_str: Any, end_str: Any) -> None:
    start_dt = parse_dt(start_str)
    end_dt = parse_dt(end_str)

    if not start_dt or not end_dt:
        raise BadRequest("Invalid date format. Use ISO-8601.")
    if end_dt <= start_dt:
        raise BadRequest("endDate must be after startDate")


def _find_event(events: list, event_id: str) -> Optional[Dict[str, Any]]:
    return next((e for e in events if e["id"] == event_id), None)


def _ensure_can_modify(crm: CRMGateway, user: Dict[str, Any], event_id: str, action: str) -> Optional[Dict[str, Any]]:
    """
    Role + ownership check for update/delete.

    Admins pass straight through. Organizers must own the event: all events
    visible to them are fetched and scanned for `event_id`.

    Returns:
        dict: The current event for Organizers, None for Admins.
    """
    ensure_role(user, MANAGER_ROLES, f"Only Organizers and Admins can {action} events")

    if user["role"] == ROLE_ADMIN:
        return None

    event = _find_event(crm.list_events(user_id=user["id"]), event_id)
    if not event or event["ownerId"] != user["id"]:
        raise Forbidden(f"Organizers can only {action} their own events")
    return event


# --- LIST ---
@events_bp.route("", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return all events. Public.

    Returns:
        200: { total, events }
    """
    events = get_crm().list_events()

    return jsonify({
        "success": True,
        "message": "Events retrieved successfully",
        "data": {"total": len(events), "events": events},
    }), 200


@events_bp.route("/my-events", methods=["GET"])
@login_required
def list_my_events() -> Tuple[Response, int]:
    """
    Events owned by the caller.
    """
    user = current_user()
    events = [e for e in get_crm().list_events(user_id=user["id"]) if e["ownerId"] == user["id"]]

    return jsonify({
        "success": True,
        "message": "Your events retrieved successfully",
        "data": {"total": len(events), "events": events},
    }), 200


@events_bp.route("/<event_id>", methods=["GET"])
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Get a single event by ID. Public.

    Returns:
        200: Event object.
        404: Event not found.
    """
    event = _find_event(get_crm().list_events(), event_id)
    if not event:
        raise NotFound(f"Event with ID {event_id} not found")

    return jsonify({
        "success": True,
        "message": "Event retrieved successfully",
        "data": event,
    }), 200


# --- CREATE ---
@events_bp.route("", methods=["POST"])
@login_required
def create_event() -> Tuple[Response, int]:
    """
    Create an event owned by the caller.

    Validations:
    - Role (Organizer or Admin).
    - name, startDate, endDate present; endDate strictly after startDate.
    - capacity, when given, is a positive integer.
    - status is one of VALID_STATUSES.

    Returns:
        201: The created event.
        400: Validation error.
        403: Role permission error.
    """
    user = current_user()
    ensure_role(user, MANAGER_ROLES, "Only Organizers and Admins can create events")

    data = json_body()

    name = text_field(data, "name")
    start_str = data.get("startDate")
    end_str = data.get("endDate")

    # --- START VALIDATION ---
    if not name or not start_str or not end_str:
        raise BadRequest("Name, startDate, and endDate are required")
    if len(name) > NAME_MAX_LENGTH:
        raise BadRequest(f"Name must be {NAME_MAX_LENGTH} characters or less.")

    _validate_dates(start_str, end_str)

    status = data.get("status") or DEFAULT_EVENT_STATUS
    if status not in VALID_STATUSES:
        raise BadRequest(f"status must be one of: {', '.join(VALID_STATUSES)}")

    capacity = _validate_capacity(data.get("capacity"))
    # --- END VALIDATION ---

    event_data = {
        "name": name,
        "startDate": start_str,
        "endDate": end_str,
        "description": text_field(data, "description", strip=False),
        "status": status,
        "capacity": capacity,
        "location": text_field(data, "location") or DEFAULT_EVENT_LOCATION,
    }

    event_id = get_crm().create_event(user["id"], event_data)
    logging.info(f"[Events] User {user['id']} created event {event_id}")

    return jsonify({
        "success": True,
        "message": "Event created successfully",
        "data": {"id": event_id, **event_data, "ownerId": user["id"], "createdBy": user["id"]},
    }), 201


# --- UPDATE ---
@events_bp.route("/<event_id>", methods=["PUT"])
@login_required
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Update an event.

    Permission:
    - Admin: any event.
    - Organizer: only events they own.

    Only the fields present in the body are sent to the CRM.

    Returns:
        200: The changed fields.
        400: Validation error.
        403: Forbidden.
    """
    user = current_user()
    data = json_body()

    changes = {key: data[key] for key in UPDATABLE_FIELDS if key in data}

    # --- VALIDATION BLOCK ---
    if not changes:
        raise BadRequest("No update data provided")

    if "name" in changes:
        if not isinstance(changes["name"], str) or not changes["name"].strip():
            raise BadRequest("Name cannot be empty")
        changes["name"] = changes["name"].strip()
        if len(changes["name"]) > NAME_MAX_LENGTH:
            raise BadRequest(f"Name must be {NAME_MAX_LENGTH} characters or less.")

    for key in ("startDate", "endDate"):
        if key in changes and not parse_dt(changes[key]):
            raise BadRequest(f"Invalid {key} format. Use ISO-8601.")

    for key in ("description", "location"):
        if key in changes:
            changes[key] = text_field(changes, key, strip=False)

    if "status" in changes and changes["status"] not in VALID_STATUSES:
        raise BadRequest(f"status must be one of: {', '.join(VALID_STATUSES)}")

    if "capacity" in changes:
        changes["capacity"] = _validate_capacity(changes["capacity"])

    crm = get_crm()
    event = _ensure_can_modify(crm, user, event_id, "update")

    # Check final start/end times against the stored event when only one moves
    if "startDate" in changes or "endDate" in changes:
        if not ("startDate" in changes and "endDate" in changes) and event is None:
            event = _find_event(crm.list_events(user_id=user["id"]), event_id)
            if not event:
                raise NotFound(f"Event with ID {event_id} not found")
        final_start = changes.get("startDate", event["startDate"] if event else None)
        final_end = changes.get("endDate", event["endDate"] if event else None)
        _validate_dates(final_start, final_end)

    crm.update_event(user["id"], event_id, changes)
    logging.info(f"[Events] User {user['id']} updated event {event_id}")

    return jsonify({
        "success": True,
        "message": "Event updated successfully",
        "data": {"id": event_id, **changes},
    }), 200


# --- DELETE ---
@events_bp.route("/<event_id>", methods=["DELETE"])
@login_required
def delete_event(event_id: str) -> Tuple[Response, int]:
    """
    Delete an event if the caller is an Admin or the owning Organizer.
    """
    user = current_user()
    crm = get_crm()
    _ensure_can_modify(crm, user, event_id, "delete")

    crm.delete_event(user["id"], event_id)
    logging.info(f"[Events] User {user['id']} deleted event {event_id}")

    return jsonify({
        "success": True,
        "message": "Event deleted successfully",
        "data": {"id": event_id},
    }), 200


@events_bp.route("/<event_id>/attendees", methods=["GET"])
def get_event_attendees(event_id: str) -> Tuple[Response, int]:
    """
    Get the list of attendees for an event. Public.
    """
    attendees = get_crm().list_event_attendees(event_id)

    return jsonify({
        "success": True,
        "message": "Attendees retrieved successfully",
        "data": {"total": len(attendees), "attendees": attendees},
    }), 200
