"""
Shared authentication helpers.
Provides token creation, verification, the auth gate decorator and role
helpers used by every service.
"""

import os
import re
import jwt
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional
from flask import g, request
from dotenv import load_dotenv

from eventify.gateway.errors import BadRequest, Forbidden, Unauthorized

# Load .env only once here
load_dotenv()

# Load secrets & configs
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is missing. Set it in .env")

JWT_ALGORITHM = "HS256"
TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 60))  # Default 1 hour

# --- ROLES ---
# "Attandee" is the picklist value stored in the CRM; keep it on the wire.
ROLE_ADMIN = "Admin"
ROLE_ORGANIZER = "Organizer"
ROLE_ATTENDEE = "Attandee"
VALID_ROLES = (ROLE_ADMIN, ROLE_ORGANIZER, ROLE_ATTENDEE)
MANAGER_ROLES = (ROLE_ADMIN, ROLE_ORGANIZER)

ROLE_ALIASES = {"Attendee": ROLE_ATTENDEE}

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class InvalidToken(Exception):
    """Token is malformed, mis-signed, expired, or missing claims."""


def normalize_role(role: Optional[str]) -> Optional[str]:
    """
    Map user input to a CRM role literal.

    Returns:
        str: One of VALID_ROLES, or None if the role is not recognized.
    """
    if not role:
        return None
    role = ROLE_ALIASES.get(role, role)
    return role if role in VALID_ROLES else None


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email and EMAIL_PATTERN.match(email))


# --- REQUEST BODY ---
def json_body() -> Dict[str, Any]:
    """
    The request's JSON body, or {} when there is none.

    Raises:
        BadRequest: The body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def text_field(data: Dict[str, Any], key: str, strip: bool = True) -> str:
    """
    Read a string field from a JSON body. Missing and null give "".

    Raises:
        BadRequest: The field is present but not a string.
    """
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise BadRequest(f"{key} must be a string")
    return value.strip() if strip else value


# --- JWT CREATION ---
def create_token(user_id: str, email: str, role: str, issued_at: Optional[datetime] = None) -> str:
    """
    Generates a new JWT for a given user.

    Args:
        user_id (str): CRM id of the user.
        email (str): The user's email.
        role (str): Admin, Organizer or Attandee.
        issued_at (datetime, optional): Issue time, defaults to now.

    Returns:
        str: Encoded JWT string, valid for TOKEN_EXPIRATION_MINUTES.
    """
    now = issued_at or datetime.now(timezone.utc)

    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


# --- JWT VALIDATION ---
def verify_token(token: str) -> Dict[str, Any]:
    """
    Validate a JWT and return its identity claims.

    Args:
        token (str): JWT string.

    Returns:
        dict: {"id", "email", "role"}

    Raises:
        InvalidToken: Bad signature, expired, malformed, or missing claims.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidToken(str(e)) from e

    if not payload.get("id") or not payload.get("role"):
        raise InvalidToken("token is missing identity claims")

    return {"id": payload["id"], "email": payload.get("email"), "role": payload["role"]}


def verify_token_from_request() -> Dict[str, Any]:
    """
    Verify the JWT in the Authorization header.

    Expired and malformed tokens get the same answer on purpose.

    Returns:
        dict: The caller's {"id", "email", "role"}.

    Raises:
        Unauthorized: Header missing or token invalid.
    """
    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        raise Unauthorized("Missing bearer token")

    token = auth.split(" ", 1)[1].strip()

    try:
        return verify_token(token)
    except InvalidToken:
        raise Unauthorized("Invalid or expired token")


# --- AUTH GATE ---
def login_required(view: Callable) -> Callable:
    """
    Reject the request with 401 unless it carries a valid bearer token.
    The verified claims are stored on flask.g.current_user.
    """
    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        g.current_user = verify_token_from_request()
        return view(*args, **kwargs)

    return wrapper


def current_user() -> Dict[str, Any]:
    """The verified caller. Only valid inside a login_required view."""
    return g.current_user


def ensure_role(user: Dict[str, Any], roles: Iterable[str], message: str) -> None:
    """Raise Forbidden unless the caller holds one of `roles`."""
    if user.get("role") not in roles:
        raise Forbidden(message)
