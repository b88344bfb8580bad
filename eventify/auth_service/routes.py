"""
Authentication service route handlers.

Provides routes for:
- User registration
- User login
- Profile retrieval (/profile GET)
- Profile update (/profile PUT)
- Password change
- Account deletion (/profile DELETE)

User records live in the CRM; this module only validates, hashes passwords
and shapes responses. All JWT logic is delegated to `auth_service.utils`.
"""

import logging
from typing import Tuple, Dict, Any

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from flask import Blueprint, request, jsonify, Response

from eventify.crm.gateway import get_crm, normalize_user
from eventify.gateway.errors import BadRequest, Conflict, Forbidden, NotFound, Unauthorized
from eventify.auth_service.utils import (
    ROLE_ADMIN,
    create_token,
    current_user,
    is_valid_email,
    json_body,
    login_required,
    normalize_role,
    text_field,
)

auth_bp = Blueprint("auth", __name__)
ph = PasswordHasher()

MIN_PASSWORD_LENGTH = 6


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request to the authentication service.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


def _password_matches(password_hash: str, password: str) -> bool:
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user in the CRM.

    Expects a JSON body with:
    - name (str)
    - email (str): Unique, well-formed email address.
    - password (str): Minimum 6 characters.
    - role (str): Admin, Organizer or Attandee.

    Returns:
        201: JSON with a JWT token and the public user object.
        400: Missing fields, invalid input, or email already exists.
        500: CRM or hashing error.
    """
    data = json_body()
    name = text_field(data, "name")
    email = text_field(data, "email").lower()
    password = text_field(data, "password", strip=False)
    role = normalize_role(text_field(data, "role"))

    # Validate input before touching the CRM
    if not name or not email or not password:
        raise BadRequest("Name, email, and password are required")
    if not is_valid_email(email):
        raise BadRequest("Please provide a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not role:
        raise BadRequest("Invalid role")

    crm = get_crm()
    if crm.find_user_by_email(email):
        raise BadRequest("Email already registered")

    user_id = crm.create_user({
        "Name": name,
        "Email__c": email,
        "Password__c": ph.hash(password),
        "Role__c": role,
    })
    logging.info(f"[Auth] Registered user {user_id} as {role}")

    # Generate initial token for immediate login
    token = create_token(user_id, email, role)

    return jsonify({
        "token": token,
        "user": {"id": user_id, "name": name, "email": email, "role": role},
    }), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and return a JWT.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: JSON with JWT token and the public user object.
        400: Missing credentials.
        401: Invalid credentials (wrong password or email).
    """
    data = json_body()
    email = text_field(data, "email").lower()
    password = text_field(data, "password", strip=False)

    if not email or not password:
        raise BadRequest("Email and password required")

    record = get_crm().find_user_by_email(email)
    if not record or not _password_matches(record.get("Password__c") or "", password):
        raise Unauthorized("Invalid email or password")

    user = normalize_user(record)
    token = create_token(user["id"], user["email"], user["role"])

    return jsonify({
        "token": token,
        "user": {"id": user["id"], "name": user["name"], "email": user["email"], "role": user["role"]},
    }), 200


# --- GET PROFILE ---
@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile() -> Tuple[Response, int]:
    """
    Retrieve the caller's profile from the CRM profile resource.

    Requires Authorization header: Bearer <token>
    """
    profile = get_crm().get_profile(current_user()["id"])

    return jsonify({
        "success": True,
        "message": "Profile retrieved successfully",
        "data": profile,
    }), 200


# --- UPDATE PROFILE ---
@auth_bp.route("/profile", methods=["PUT"])
@login_required
def edit_profile() -> Tuple[Response, int]:
    """
    Update specific fields of the caller's profile.

    Allowed fields: name, email, role (Admins only), phone.

    Returns:
        200: Updated fields.
        400: No valid fields, bad email/role, or email already taken.
        403: Non-admin trying to change a role.
    """
    user = current_user()
    data = json_body()

    updates: Dict[str, Any] = {}

    name = text_field(data, "name")
    if name:
        updates["Name"] = name

    email = text_field(data, "email").lower()
    if email:
        if not is_valid_email(email):
            raise BadRequest("Please provide a valid email address")
        updates["Email__c"] = email

    requested_role = text_field(data, "role")
    if requested_role:
        role = normalize_role(requested_role)
        if not role:
            raise BadRequest("Invalid role")
        if role != user["role"] and user["role"] != ROLE_ADMIN:
            raise Forbidden("Only Admins can change roles")
        updates["Role__c"] = role

    if "phone" in data:
        updates["Phone__c"] = text_field(data, "phone") or None

    if not updates:
        raise BadRequest("No valid fields provided")

    crm = get_crm()
    if "Email__c" in updates:
        existing = crm.find_user_by_email(updates["Email__c"])
        if existing and existing.get("Id") != user["id"]:
            raise BadRequest("Email already registered")

    crm.update_user(user["id"], updates)

    return jsonify({
        "success": True,
        "message": "Profile updated successfully",
        "data": normalize_user({"Id": user["id"], **updates}),
    }), 200


# --- CHANGE PASSWORD ---
@auth_bp.route("/change-password", methods=["PUT"])
@login_required
def change_password() -> Tuple[Response, int]:
    """
    Replace the caller's password after checking the current one.

    Expects JSON: { "currentPassword": str, "newPassword": str }

    Returns:
        200: Password updated.
        400: Missing fields or new password too short.
        401: Current password is incorrect.
        404: User record no longer exists.
    """
    user_id = current_user()["id"]
    data = json_body()
    current_password = text_field(data, "currentPassword", strip=False)
    new_password = text_field(data, "newPassword", strip=False)

    if not current_password or not new_password:
        raise BadRequest("All fields are required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    crm = get_crm()
    record = crm.find_user_by_id(user_id)
    if not record:
        raise NotFound("User not found")

    if not _password_matches(record.get("Password__c") or "", current_password):
        raise Unauthorized("Current password is incorrect")

    crm.update_user(user_id, {"Password__c": ph.hash(new_password)})

    return jsonify({"success": True, "message": "Password updated successfully"}), 200


# --- DELETE ACCOUNT ---
@auth_bp.route("/profile", methods=["DELETE"])
@login_required
def delete_account() -> Tuple[Response, int]:
    """
    Delete the caller's account.

    Accounts linked to attendee records can only be removed by an Admin,
    in which case the CRM is told to force the deletion.

    Returns:
        200: Account deleted.
        409: Linked attendee records and caller is not an Admin.
    """
    user = current_user()
    crm = get_crm()

    force = request.args.get("force") == "true"
    if crm.user_has_attendees(user["id"]):
        if user["role"] != ROLE_ADMIN:
            raise Conflict(
                "Account is linked with attendee records. "
                "Admin access required for force deletion."
            )
        force = True

    crm.delete_user(user["id"], force=force and user["role"] == ROLE_ADMIN)
    logging.info(f"[Auth] Deleted account {user['id']}")

    return jsonify({"success": True, "message": "Account deleted successfully"}), 200
