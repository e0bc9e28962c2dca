"""
Account operations over Supabase Auth: registration, login by email or first name,
sign-out and password change. Profile rows live in the users table (DatabaseClient).
"""
import logging
import re
from typing import Dict, Optional

from supabase import Client

from engine import MIN_PASSWORD_LENGTH, ROLE_USER
from examportal.database import DatabaseClient, StorageError

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthError(Exception):
    """Sign-up, sign-in or password change failed. `field` names the offending input, if any."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_password(password: str, confirm: str):
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")
    if password != confirm:
        raise AuthError("Passwords do not match", field="confirm_password")


class AuthService:
    """Thin wrapper around `client.auth` that keeps the profile table in step."""

    def __init__(self, client: Client, db: DatabaseClient):
        self.client = client
        self.db = db

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        confirm_password: Optional[str] = None,
        role: str = ROLE_USER,
    ) -> Dict:
        """
        Create the auth account, then its profile row.

        Returns:
            The stored profile
        """
        email = (email or "").strip()
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name:
            raise AuthError("First name is required", field="first_name")
        if not last_name:
            raise AuthError("Last name is required", field="last_name")
        if not _EMAIL_RE.match(email):
            raise AuthError("Enter a valid email address", field="email")
        validate_password(password, password if confirm_password is None else confirm_password)

        try:
            response = self.client.auth.sign_up({"email": email, "password": password})
        except Exception as e:
            logger.warning(f"Sign-up failed for {email}: {e}")
            raise AuthError(f"Registration failed: {e}") from e
        if response.user is None:
            raise AuthError("Registration failed: no account was created")

        try:
            profile = self.db.create_user_profile(response.user.id, email, first_name, last_name, role=role)
        except StorageError as e:
            raise AuthError(str(e)) from e
        logger.info(f"Registered {email}")
        return profile

    def _email_for(self, identifier: str) -> str:
        if "@" in identifier:
            return identifier
        profile = self.db.find_user_by_first_name(identifier)
        if not profile or not profile.get("email"):
            logger.warning(f"Sign-in: no user named {identifier!r}")
            raise AuthError("User not found", field="identifier")
        return profile["email"]

    def sign_in(self, identifier: str, password: str) -> Dict:
        """Sign in with an email, or a first name resolved to that user's email. Returns the profile."""
        identifier = (identifier or "").strip()
        if not identifier or not password:
            raise AuthError("Enter your email or name and your password")
        email = self._email_for(identifier)

        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            logger.warning(f"Sign-in failed for {email}: {e}")
            raise AuthError("Incorrect email/name or password") from e
        if response.user is None:
            raise AuthError("Incorrect email/name or password")

        profile = self.db.get_user(response.user.id)
        if profile is None:
            self.sign_out()
            raise AuthError("User profile not found")
        return profile

    def current_session(self):
        try:
            return self.client.auth.get_session()
        except Exception as e:
            logger.error(f"Error reading auth session: {e}")
            return None

    def current_user_id(self) -> Optional[str]:
        session = self.current_session()
        if session is None or session.user is None:
            return None
        return session.user.id

    def sign_out(self):
        try:
            self.client.auth.sign_out()
        except Exception as e:
            logger.error(f"Error signing out: {e}")

    def reauthenticate(self, email: str, password: str):
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise AuthError("Current password is incorrect", field="current_password") from e
        if response.user is None:
            raise AuthError("Current password is incorrect", field="current_password")

    def change_password(self, email: str, current_password: str, new_password: str, confirm_password: str):
        if not current_password:
            raise AuthError("Enter your current password", field="current_password")
        validate_password(new_password, confirm_password)
        self.reauthenticate(email, current_password)
        try:
            self.client.auth.update_user({"password": new_password})
        except Exception as e:
            logger.error(f"Password change failed for {email}: {e}")
            raise AuthError(f"Could not change password: {e}") from e
        logger.info(f"Password changed for {email}")
