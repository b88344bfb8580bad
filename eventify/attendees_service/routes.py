"""
Attendees service routes: register for an event, list registrations,
cancel (soft, the CRM flips the status) and delete (hard).
"""

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, Response

from eventify.crm.gateway import CRMError, get_crm
from eventify.gateway.errors import BadRequest, from_crm_error
from eventify.auth_service.utils import current_user, is_valid_email, json_body, login_required, text_field

attendees_bp = Blueprint("attendees", __name__)


@attendees_bp.before_request
def before_request() -> None:
    logging.info(f"[Attendees] Incoming {request.method} {request.path}")


@attendees_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Attendees] Response {response.status}")
    return response


# --- REGISTER ---
@attendees_bp.route("", methods=["POST"])
@login_required
def register_attendee() -> Tuple[Response, int]:
    """
    Register the caller (or someone they sign up) for an event.

    Expects JSON: { "name": str, "email": str, "eventId": str }

    Returns:
        201: The new registration.
        400: Missing fields or malformed email.
        409: Already registered.
    """
    user_id = current_user()["id"]
    data = json_body()

    name = text_field(data, "name")
    email = text_field(data, "email")
    event_id = text_field(data, "eventId")

    if not name or not email or not event_id:
        raise BadRequest("name, email, and eventId are required")
    if not is_valid_email(email):
        raise BadRequest("Please provide a valid email address", error="Invalid Email")

    try:
        message, attendee_id = get_crm().register_attendee(
            user_id, {"name": name, "email": email, "eventId": event_id}
        )
    except CRMError as e:
        logging.error(f"[Attendees] Registration for event {event_id} failed: {e.message}")
        raise from_crm_error(e, error="Already Registered" if e.status_code == 409 else "Registration Failed")

    return jsonify({
        "success": True,
        "message": message or "Attendee registered successfully",
        "data": {"id": attendee_id, "name": name, "email": email, "eventId": event_id, "userId": user_id},
    }), 201


@attendees_bp.route("/my", methods=["GET"])
@login_required
def list_my_registrations() -> Tuple[Response, int]:
    """
    Registrations made by the caller.
    """
    attendees = get_crm().list_my_attendees(current_user()["id"])

    return jsonify({
        "success": True,
        "message": "Your registrations retrieved successfully",
        "data": {"total": len(attendees), "attendees": attendees},
    }), 200


@attendees_bp.route("/<event_id>", methods=["GET"])
def list_attendees(event_id: str) -> Tuple[Response, int]:
    """
    Get attendees for an event. Public.
    """
    attendees = get_crm().list_attendees(event_id)

    return jsonify({
        "success": True,
        "message": "Attendees retrieved successfully",
        "data": {"total": len(attendees), "attendees": attendees},
    }), 200


# --- CANCEL ---
@attendees_bp.route("/cancel/<attendee_id>", methods=["PUT"])
@login_required
def cancel_registration(attendee_id: str) -> Tuple[Response, int]:
    """
    Cancel a registration. The record stays in the CRM with a cancelled
    status; the CRM checks it belongs to the caller.
    """
    user_id = current_user()["id"]
    message = get_crm().cancel_attendee(user_id, attendee_id)
    logging.info(f"[Attendees] User {user_id} cancelled registration {attendee_id}")

    return jsonify({
        "success": True,
        "message": message or "Attendee registration cancelled successfully",
        "data": {"id": attendee_id},
    }), 200


# --- DELETE ---
@attendees_bp.route("/<attendee_id>", methods=["DELETE"])
def delete_attendee(attendee_id: str) -> Tuple[Response, int]:
    """
    Hard-delete an attendee record.
    """
    message = get_crm().delete_attendee(attendee_id)
    logging.info(f"[Attendees] Deleted attendee {attendee_id}")

    return jsonify({
        "success": True,
        "message": message or "Attendee deleted successfully",
        "data": {"id": attendee_id},
    }), 200
