"""
Database operations for the exam portal.
Handles Supabase CRUD for user profiles, tests, results and site settings.

Reads log backend failures and return empty values so pages can still render.
Writes log and raise StorageError so the caller can tell the user.
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from supabase import Client

from db import get_supabase_uncached
from engine import DEFAULT_SETTINGS, ROLE_ADMIN, ROLE_USER, SETTINGS_ROW_ID
from examportal.definitions import Test, ValidationError, collect_errors, validate_test
from examportal.engine import Result

logger = logging.getLogger(__name__)

USER_FIELDS = ("email", "first_name", "last_name", "role", "show_in_rank", "profile_image")


class StorageError(Exception):
    """A write to the backend failed."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DatabaseClient:
    """Wrapper around Supabase client with exam-portal operations."""

    def __init__(self, client: Optional[Client] = None):
        self.client: Client = client if client is not None else get_supabase_uncached()

    # ============= Users =============

    def get_user(self, user_id: str) -> Optional[Dict]:
        try:
            response = self.client.table("users").select("*").eq("id", str(user_id)).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            return None

    def list_users(self) -> List[Dict]:
        try:
            response = self.client.table("users").select("*").order("created_at", desc=True).execute()
            return response.data if response.data else []
        except Exception as e:
            logger.error(f"Error fetching users: {e}")
            return []

    def find_user_by_first_name(self, first_name: str) -> Optional[Dict]:
        """First profile whose first name equals `first_name` exactly (login by name)."""
        try:
            response = self.client.table("users").select("*").eq("first_name", first_name).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error looking up user by first name: {e}")
            return None

    def find_user_by_email(self, email: str) -> Optional[Dict]:
        try:
            response = self.client.table("users").select("*").eq("email", email).limit(1).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error looking up user by email: {e}")
            return None

    def create_user_profile(
        self,
        user_id: str,
        email: str,
        first_name: str,
        last_name: str,
        role: str = ROLE_USER,
    ) -> Dict:
        """
        Insert the profile row that accompanies a new auth account.

        Returns:
            The stored profile
        """
        row = {
            "id": str(user_id),
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
            "show_in_rank": False,
            "profile_image": None,
            "created_at": _now_iso(),
        }
        try:
            response = self.client.table("users").insert(row).execute()
        except Exception as e:
            logger.error(f"Error creating profile for {email}: {e}")
            raise StorageError(f"Could not create user profile: {e}") from e
        logger.info(f"Created {role} profile {user_id}")
        return response.data[0] if response.data else row

    def update_user(self, user_id: str, fields: Dict) -> Dict:
        """Partial update of a profile. Unknown keys are dropped."""
        data = {k: v for k, v in fields.items() if k in USER_FIELDS}
        dropped = set(fields) - set(data)
        if dropped:
            logger.warning(f"Ignoring unknown profile fields: {sorted(dropped)}")
        if not data:
            return {}
        try:
            response = self.client.table("users").update(data).eq("id", str(user_id)).execute()
        except Exception as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise StorageError(f"Could not update user: {e}") from e
        return response.data[0] if response.data else data

    def set_user_as_admin(self, user_id: str) -> Dict:
        return self.update_user(user_id, {"role": ROLE_ADMIN})

    # ============= Tests =============

    def _rows_to_tests(self, rows: List[Dict]) -> List[Test]:
        """Parse stored rows, skipping any that are unreadable or no longer valid."""
        tests = []
        for row in rows:
            try:
                test = Test.from_dict(row)
                errors = collect_errors(test)
            except (ValidationError, AttributeError, TypeError, ValueError) as e:
                logger.error(f"Skipping unreadable test {row.get('id') if isinstance(row, dict) else row!r}: {e}")
                continue
            if errors:
                logger.error(f"Skipping invalid test {test.id}: {errors}")
                continue
            tests.append(test)
        return tests

    def list_tests(self) -> List[Test]:
        """All tests, newest first."""
        try:
            response = self.client.table("tests").select("*").order("created_at", desc=True).execute()
        except Exception as e:
            logger.error(f"Error fetching tests: {e}")
            return []
        return self._rows_to_tests(response.data or [])

    def get_test(self, test_id: str) -> Optional[Test]:
        try:
            response = self.client.table("tests").select("*").eq("id", str(test_id)).limit(1).execute()
        except Exception as e:
            logger.error(f"Error fetching test {test_id}: {e}")
            return None
        tests = self._rows_to_tests(response.data or [])
        return tests[0] if tests else None

    def create_test(self, test: Test, created_by: Optional[str] = None) -> Test:
        """
        Store a new test under a fresh id.

        Raises:
            ValidationError: the test is not structurally valid
            StorageError: the insert failed
        """
        validate_test(test)
        stored = replace(
            test,
            id=str(uuid4()),
            created_at=_now_iso(),
            created_by=created_by or test.created_by,
        )
        try:
            self.client.table("tests").insert(stored.to_dict()).execute()
        except Exception as e:
            logger.error(f"Error creating test {test.title!r}: {e}")
            raise StorageError(f"Could not create test: {e}") from e
        logger.info(f"Created test {stored.id} ({len(stored.questions)} questions)")
        return stored

    def update_test(self, test: Test) -> Test:
        """Replace a stored test entirely (editing is full replacement)."""
        if not test.id:
            raise StorageError("Cannot update a test without an id")
        validate_test(test)
        row = test.to_dict()
        row.pop("id")
        try:
            self.client.table("tests").update(row).eq("id", test.id).execute()
        except Exception as e:
            logger.error(f"Error updating test {test.id}: {e}")
            raise StorageError(f"Could not update test: {e}") from e
        logger.info(f"Updated test {test.id}")
        return test

    def delete_test(self, test_id: str):
        try:
            self.client.table("tests").delete().eq("id", str(test_id)).execute()
        except Exception as e:
            logger.error(f"Error deleting test {test_id}: {e}")
            raise StorageError(f"Could not delete test: {e}") from e
        logger.info(f"Deleted test {test_id}")

    # ============= Results =============

    def save_result(self, result: Result) -> Result:
        """Append a result; every attempt is a new row."""
        stored = replace(result, id=result.id or str(uuid4()))
        try:
            self.client.table("results").insert(stored.to_dict()).execute()
        except Exception as e:
            logger.error(f"Error saving result for test {result.test_id}: {e}")
            raise StorageError(f"Could not save result: {e}") from e
        logger.info(f"Saved result {stored.id}: user={stored.user_id} test={stored.test_id} {stored.percentage}%")
        return stored

    def get_results(
        self,
        user_id: Optional[str] = None,
        test_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Result]:
        """Results, most recent first, optionally narrowed to one user and/or test."""
        try:
            query = self.client.table("results").select("*")
            if user_id:
                query = query.eq("user_id", str(user_id))
            if test_id:
                query = query.eq("test_id", str(test_id))
            query = query.order("completed_at", desc=True)
            if limit:
                query = query.limit(limit)
            response = query.execute()
            return [Result.from_dict(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Error fetching results: {e}")
            return []

    def get_latest_result(self, user_id: str, test_id: str) -> Optional[Result]:
        results = self.get_results(user_id=user_id, test_id=test_id, limit=1)
        return results[0] if results else None

    # ============= Settings =============

    def get_settings(self) -> Dict:
        """Site settings merged over the defaults."""
        settings = dict(DEFAULT_SETTINGS)
        try:
            response = self.client.table("settings").select("*").eq("id", SETTINGS_ROW_ID).limit(1).execute()
        except Exception as e:
            logger.error(f"Error fetching settings: {e}")
            return settings
        if response.data:
            stored = response.data[0]
            settings.update({k: stored[k] for k in DEFAULT_SETTINGS if stored.get(k) is not None})
        return settings

    def update_settings(self, settings: Dict) -> Dict:
        data = {k: v for k, v in settings.items() if k in DEFAULT_SETTINGS}
        try:
            self.client.table("settings").upsert({"id": SETTINGS_ROW_ID, **data}, on_conflict="id").execute()
        except Exception as e:
            logger.error(f"Error saving settings: {e}")
            raise StorageError(f"Could not save settings: {e}") from e
        logger.info(f"Updated site settings: {sorted(data)}")
        return {**DEFAULT_SETTINGS, **data}

