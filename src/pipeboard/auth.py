"""
Account commands for the hosted backend.

``login`` and ``signup`` exchange an email and password for a bearer token
and put it in the token vault; ``logout`` removes it. The hosted backend
reads the token back at construction time.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .errors import AuthError, DecodeError, TransportError
from .tokens import FileTokenVault, TokenVault

logger = logging.getLogger("pipeboard.auth")

AUTH_TIMEOUT = 30


def _authenticate(
    endpoint: str,
    base_url: str,
    email: str,
    password: str,
    session: Optional[requests.Session] = None,
) -> requests.Response:
    url = f"{base_url.rstrip('/')}/api/v1/auth/{endpoint}"
    http = session or requests.Session()
    try:
        return http.post(
            url,
            json={"email": email, "password": password},
            timeout=AUTH_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise TransportError(f"{endpoint}: request failed: {exc}") from exc


def _store_from_response(
    resp: requests.Response, email: str, vault: TokenVault, action: str,
) -> str:
    try:
        token = resp.json()["token"]
    except (ValueError, KeyError, TypeError) as exc:
        raise DecodeError(f"{action}: failed to parse response: {exc}") from exc
    if not token:
        raise DecodeError(f"{action}: server returned an empty token")
    vault.store_token(email, token)
    return token


def login(
    base_url: str,
    email: str,
    password: str,
    vault: Optional[TokenVault] = None,
    session: Optional[requests.Session] = None,
) -> None:
    """Authenticate and store the returned token.

    Raises:
        AuthError: On bad credentials.
        TransportError: On any other failure.
    """
    resp = _authenticate("login", base_url, email, password, session)
    if resp.status_code in (401, 404):
        raise AuthError("invalid email or password")
    if resp.status_code != 200:
        raise TransportError(
            f"login failed (status {resp.status_code}): {resp.text.strip()}",
            permanent=True,
        )
    _store_from_response(resp, email, vault or FileTokenVault(), "login")
    logger.info("Logged in as %s", email)


def signup(
    base_url: str,
    email: str,
    password: str,
    vault: Optional[TokenVault] = None,
    session: Optional[requests.Session] = None,
) -> None:
    """Create an account and store the returned token.

    Raises:
        AuthError: If the email is already registered.
        TransportError: On any other failure.
    """
    resp = _authenticate("signup", base_url, email, password, session)
    if resp.status_code == 409:
        raise AuthError("account already exists for this email")
    if resp.status_code not in (200, 201):
        raise TransportError(
            f"signup failed (status {resp.status_code}): {resp.text.strip()}",
            permanent=True,
        )
    _store_from_response(resp, email, vault or FileTokenVault(), "signup")
    logger.info("Signed up as %s", email)


def logout(email: str, vault: Optional[TokenVault] = None) -> None:
    (vault or FileTokenVault()).clear_token(email)
    logger.info("Logged out %s", email)
