"""
Salesforce session handling.

Holds the service-level credential (instance URL + access token) used by the
CRM gateway for every outbound call. The session is an explicit object that
the gateway keeps a reference to, so an expired token can be replaced in
place instead of requiring a process restart.
"""

import os
import logging
import threading
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv()

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_TIMEOUT_SECONDS = 30


class CRMAuthError(Exception):
    """Raised when the service account cannot log in to Salesforce."""


class CRMSession:
    """
    OAuth 2.0 username-password session against a Salesforce org.

    Usage:
        session = CRMSession.from_env()
        session.ensure()
        session.instance_url, session.access_token
    """

    def __init__(
        self,
        login_url: str,
        username: str,
        password: str,
        client_id: str,
        client_secret: str,
        security_token: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.login_url = login_url.rstrip("/")
        self.username = username
        self.password = password
        self.client_id = client_id
        self.client_secret = client_secret
        self.security_token = security_token
        self.timeout = timeout

        self.instance_url: Optional[str] = None
        self.access_token: Optional[str] = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "CRMSession":
        """
        Build a session from SF_* environment variables.

        Missing credentials are not an error here; they surface as a
        CRMAuthError on the first login attempt.
        """
        return cls(
            login_url=os.getenv("SF_LOGIN_URL", DEFAULT_LOGIN_URL),
            username=os.getenv("SF_USERNAME", ""),
            password=os.getenv("SF_PASSWORD", ""),
            client_id=os.getenv("SF_CLIENT_ID", ""),
            client_secret=os.getenv("SF_CLIENT_SECRET", ""),
            security_token=os.getenv("SF_SECURITY_TOKEN", ""),
            timeout=float(os.getenv("CRM_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        )

    @property
    def is_connected(self) -> bool:
        return bool(self.instance_url and self.access_token)

    # --- LOGIN ---
    def login(self) -> None:
        """
        Exchange the service credentials for an access token.

        Raises:
            CRMAuthError: Credentials rejected or Salesforce unreachable.
        """
        if not self.username or not self.password:
            raise CRMAuthError("SF_USERNAME and SF_PASSWORD must be set")

        payload = {
            "grant_type": "password",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": self.username,
            "password": f"{self.password}{self.security_token}",
        }

        try:
            response = requests.post(
                f"{self.login_url}/services/oauth2/token",
                data=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logging.error(f"[CRM] Salesforce connection error: {e}")
            raise CRMAuthError(f"Could not reach Salesforce: {e}") from e

        if response.status_code != 200:
            try:
                detail = response.json().get("error_description", response.reason)
            except ValueError:
                detail = response.reason
            logging.error(f"[CRM] Salesforce login rejected ({response.status_code}): {detail}")
            raise CRMAuthError(f"Salesforce login failed: {detail}")

        body = response.json()
        self.instance_url = body["instance_url"].rstrip("/")
        self.access_token = body["access_token"]
        logging.info(f"[CRM] Connected to Salesforce at {self.instance_url}")

    def ensure(self) -> "CRMSession":
        """Log in on first use; later calls reuse the cached token."""
        if not self.is_connected:
            with self._lock:
                if not self.is_connected:
                    self.login()
        return self

    def refresh(self, stale_token: Optional[str]) -> None:
        """
        Re-authenticate after the CRM rejected `stale_token`.

        Concurrent requests that hit the same expired token only trigger one
        login: whoever gets the lock second sees a different token and skips.
        """
        with self._lock:
            if self.access_token == stale_token:
                logging.warning("[CRM] Session expired, re-authenticating")
                self.login()
