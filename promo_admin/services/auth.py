######################################################################
# Copyright 2016, 2024 John J. Rofrano. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
######################################################################

"""
Auth Gate

Holds the identity of the signed-in Google user for the current request,
checks it against the `admins` allow-list and signs out anybody who is not
on it. Sign-in uses the Google OAuth 2.0 authorization-code flow; tokens and
identity live in the Flask session cookie, except for the Google refresh
token, which is kept in `admin_tokens` behind an opaque handle.

Sign-in errors are reported through SignInResult and never raised. Lookup
failures against the allow-list count as "not an admin".
"""

import logging
import secrets
import time
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional
from urllib.parse import urlencode, urlparse

import requests
from flask import current_app, g, has_request_context, session
from sqlalchemy.exc import SQLAlchemyError

from promo_admin.models import Admin, AdminToken, DatabaseError, db

logger = logging.getLogger("promo_admin")

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

SESSION_USER = "auth_user"
SESSION_TOKENS = "auth_tokens"
SESSION_STATE = "oauth_state"
SESSION_NEXT = "auth_next"
SESSION_REFRESH = "auth_refresh"


class AuthenticationError(Exception):
    """Raised when an operation needs a valid admin session and there is none"""


def is_local_path(target: Optional[str]) -> bool:
    """True for same-site paths such as `/ui/codes`; rejects absolute and `//host` URLs"""
    if not target or not target.startswith("/") or target.startswith("//"):
        return False
    if "\\" in target:
        return False
    parsed = urlparse(target)
    return not parsed.scheme and not parsed.netloc


@dataclass
class GoogleUser:
    """Identity of the signed-in user as reported by Google"""

    id: str
    email: str
    name: str = ""
    picture: str = ""
    given_name: str = ""
    family_name: str = ""

    @classmethod
    def from_claims(cls, claims: dict) -> "GoogleUser":
        """Maps OpenID Connect userinfo claims, with the usual fallbacks"""
        email = claims.get("email") or ""
        return cls(
            id=str(claims.get("sub") or claims.get("id") or ""),
            email=email,
            name=claims.get("full_name") or claims.get("name") or email.split("@")[0],
            picture=claims.get("picture") or claims.get("avatar_url") or "",
            given_name=claims.get("given_name") or "",
            family_name=claims.get("family_name") or claims.get("surname") or "",
        )

    def to_dict(self) -> dict:
        """Serializes the user for the session cookie and JSON responses"""
        return asdict(self)


@dataclass
class SignInResult:
    """Outcome of a sign-in step"""

    success: bool
    error: Optional[str] = None
    redirect_url: Optional[str] = None


class AuthGate:
    """Session/authorization context shared by the services of one app"""

    def __init__(self, app=None, events=None):
        self.events = events
        self._listeners: List[Callable] = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Registers the gate on the app and validates every incoming session"""
        app.extensions["auth_gate"] = self
        app.before_request(self.initialize)

    ##################################################
    # Session lifecycle
    ##################################################

    def initialize(self):
        """Loads the session identity and drops it unless it is an admin"""
        user = self._load_user()
        if user is None:
            g.auth_user = None
            return
        if self.is_admin(user.email):
            g.auth_user = user
            return
        logger.warning("Signing out non-admin session for %s", user.email)
        self._clear()
        self._notify(None)

    def is_authenticated(self) -> bool:
        """True when the current request carries a validated admin session"""
        return self.get_current_user() is not None

    def get_current_user(self) -> Optional[GoogleUser]:
        """Returns the validated user of the current request, if any"""
        if not has_request_context():
            return None
        if "auth_user" not in g:
            self.initialize()
        return g.auth_user

    def sign_in(self, return_to: Optional[str] = None) -> SignInResult:
        """Starts the Google OAuth redirect flow"""
        client_id = current_app.config.get("GOOGLE_CLIENT_ID")
        if not client_id:
            logger.error("OAuth error: GOOGLE_CLIENT_ID is not configured")
            return SignInResult(False, "Failed to authenticate with Google. Please try again.")

        state = secrets.token_urlsafe(24)
        session[SESSION_STATE] = state
        if is_local_path(return_to):
            session[SESSION_NEXT] = return_to
        elif return_to:
            logger.warning("Ignoring non-local return address %r", return_to)
        params = {
            "client_id": client_id,
            "redirect_uri": current_app.config["OAUTH_REDIRECT_URL"],
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return SignInResult(True, redirect_url=f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}")

    def complete_sign_in(
        self, code: Optional[str], state: Optional[str], error: Optional[str] = None
    ) -> SignInResult:
        """Handles the OAuth callback: exchanges the code and opens the session"""
        expected_state = session.pop(SESSION_STATE, None)
        if error:
            logger.warning("OAuth error returned by provider: %s", error)
            return SignInResult(False, "Failed to authenticate with Google. Please try again.")
        if not code or not state or state != expected_state:
            logger.warning("OAuth callback with missing code or mismatched state")
            return SignInResult(False, "Invalid sign-in attempt. Please try again.")

        config = current_app.config
        try:
            token_resp = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": config.get("GOOGLE_CLIENT_ID", ""),
                    "client_secret": config.get("GOOGLE_CLIENT_SECRET", ""),
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": config["OAUTH_REDIRECT_URL"],
                },
                timeout=config.get("OAUTH_TIMEOUT", 10),
            )
            if token_resp.status_code != 200:
                logger.error("Token exchange failed (%s): %s", token_resp.status_code, token_resp.text)
                return SignInResult(False, "Failed to authenticate with Google. Please try again.")
            tokens = token_resp.json()

            me_resp = requests.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {tokens.get('access_token', '')}"},
                timeout=config.get("OAUTH_TIMEOUT", 10),
            )
            if me_resp.status_code != 200:
                logger.error("Userinfo fetch failed (%s)", me_resp.status_code)
                return SignInResult(False, "Failed to authenticate with Google. Please try again.")
            claims = me_resp.json()
        except (requests.RequestException, ValueError) as err:
            logger.error("Sign in error: %s", err)
            return SignInResult(False, "An unexpected error occurred. Please try again.")

        user = GoogleUser.from_claims(claims)
        if not self.establish_session(user, tokens):
            return SignInResult(
                False, "Access denied. Your account is not authorized to use this dashboard."
            )
        target = session.pop(SESSION_NEXT, None)
        return SignInResult(True, redirect_url=target if is_local_path(target) else None)

    def establish_session(self, user: GoogleUser, tokens: Optional[dict] = None) -> bool:
        """Stores user and tokens in the session if user is an admin"""
        if not self.is_admin(user.email):
            logger.warning("Rejected sign-in for non-admin %s", user.email)
            self._clear()
            self._notify(None)
            return False

        tokens = tokens or {}
        stored = {"access_token": tokens.get("access_token"), "expires_at": None}
        if tokens.get("expires_in"):
            stored["expires_at"] = time.time() + int(tokens["expires_in"])
        self._revoke_refresh()
        if tokens.get("refresh_token"):
            try:
                session[SESSION_REFRESH] = AdminToken.issue(user.email, tokens["refresh_token"])
            except DatabaseError as err:
                # the session still works until the access token expires
                logger.error("Could not store refresh token for %s: %s", user.email, err)
        session[SESSION_USER] = user.to_dict()
        session[SESSION_TOKENS] = stored
        g.auth_user = user
        logger.info("Admin %s signed in", user.email)
        self._notify(user)
        return True

    def sign_out(self):
        """Ends the session"""
        user = self.get_current_user()
        self._clear()
        if user:
            logger.info("Admin %s signed out", user.email)
        self._notify(None)

    def ensure_authenticated(self, force_refresh: bool = False):
        """Raises AuthenticationError unless a usable admin session exists"""
        if self.get_current_user() is None:
            raise AuthenticationError(
                "Authentication required. Please sign in to perform this action."
            )

        tokens = dict(session.get(SESSION_TOKENS) or {})
        expires_at = tokens.get("expires_at")
        now = time.time()
        buffer = current_app.config.get("SESSION_REFRESH_BUFFER", 60)
        if expires_at and (now > expires_at or expires_at - now < buffer):
            logger.warning("Session expired, attempting to refresh...")
            if not self._refresh(tokens):
                raise AuthenticationError("Session expired. Please sign in again.")
        elif force_refresh and not self._refresh(tokens):
            logger.warning("Forced session refresh failed")

    ##################################################
    # Allow-list and listeners
    ##################################################

    @staticmethod
    def is_admin(email: Optional[str]) -> bool:
        """Allow-list check: email == X AND is_admin == true"""
        if not email:
            return False
        try:
            return Admin.is_allowed(email)
        except SQLAlchemyError as err:
            db.session.rollback()
            logger.error("Error checking admin status: %s", err)
            return False

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        """Registers listener(user) for identity changes; returns the unsubscriber"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, user: Optional[GoogleUser]):
        for listener in list(self._listeners):
            listener(user)
        if self.events is not None:
            self.events.auth_changed.send(self, user=user)

    ##################################################
    # Helpers
    ##################################################

    @staticmethod
    def _load_user() -> Optional[GoogleUser]:
        data = session.get(SESSION_USER)
        if not data:
            return None
        try:
            return GoogleUser(**data)
        except TypeError:
            logger.warning("Discarding malformed session identity")
            return None

    @classmethod
    def _clear(cls):
        cls._revoke_refresh()
        session.pop(SESSION_USER, None)
        session.pop(SESSION_TOKENS, None)
        g.auth_user = None

    @staticmethod
    def _revoke_refresh():
        handle = session.pop(SESSION_REFRESH, None)
        if not handle:
            return
        try:
            AdminToken.revoke(handle)
        except SQLAlchemyError as err:
            db.session.rollback()
            logger.error("Could not revoke refresh token: %s", err)

    @staticmethod
    def _refresh(tokens: dict) -> bool:
        try:
            refresh_token = AdminToken.lookup(session.get(SESSION_REFRESH))
        except SQLAlchemyError as err:
            db.session.rollback()
            logger.warning("Refresh token lookup failed: %s", err)
            return False
        if not refresh_token:
            return False
        config = current_app.config
        try:
            resp = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": config.get("GOOGLE_CLIENT_ID", ""),
                    "client_secret": config.get("GOOGLE_CLIENT_SECRET", ""),
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
                timeout=config.get("OAUTH_TIMEOUT", 10),
            )
            if resp.status_code != 200:
                logger.warning("Token refresh failed (%s)", resp.status_code)
                return False
            fresh = resp.json()
        except (requests.RequestException, ValueError) as err:
            logger.warning("Token refresh failed: %s", err)
            return False

        tokens["access_token"] = fresh.get("access_token", tokens.get("access_token"))
        if fresh.get("expires_in"):
            tokens["expires_at"] = time.time() + int(fresh["expires_in"])
        session[SESSION_TOKENS] = tokens
        return True
