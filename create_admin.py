"""Bootstrap administrators: register a new admin account, or promote an existing user by email."""
import argparse
import getpass
import logging
import os

from dotenv import load_dotenv

from db import get_supabase_uncached
from engine import ROLE_ADMIN
from examportal.auth import AuthError, AuthService
from examportal.database import DatabaseClient, StorageError

load_dotenv()

logger = logging.getLogger(__name__)


class AdminSetupError(Exception):
    """The admin account could not be created or promoted."""


def create_admin(auth: AuthService, email: str, password: str, first_name: str, last_name: str,
                 confirm_password: str | None = None) -> dict:
    """Register a new account whose profile carries the admin role."""
    try:
        profile = auth.sign_up(email, password, first_name, last_name,
                               confirm_password=confirm_password, role=ROLE_ADMIN)
    except AuthError as e:
        raise AdminSetupError(str(e)) from e
    logger.info(f"Created admin account {email}")
    return profile


def promote_admin(db: DatabaseClient, email: str) -> dict:
    """Give an existing user the admin role."""
    profile = db.find_user_by_email((email or "").strip())
    if profile is None:
        raise AdminSetupError(f"No user with email {email!r}")
    if profile.get("role") == ROLE_ADMIN:
        logger.info(f"{email} is already an admin")
        return profile
    try:
        updated = db.set_user_as_admin(profile["id"])
    except StorageError as e:
        raise AdminSetupError(str(e)) from e
    logger.info(f"Promoted {email} to admin")
    return {**profile, **updated}


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Create or promote exam portal administrators.")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Register a new admin account")
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--password", default=None, help="Prompted for when omitted")

    promote = sub.add_parser("promote", help="Give an existing user the admin role")
    promote.add_argument("email")

    args = parser.parse_args()
    client = get_supabase_uncached()
    database = DatabaseClient(client)
    try:
        if args.command == "create":
            password = args.password
            confirm = None
            if password is None:
                password = getpass.getpass("Password: ")
                confirm = getpass.getpass("Confirm password: ")
            create_admin(AuthService(client, database), args.email, password, args.first_name, args.last_name,
                         confirm_password=confirm)
            print(f"Admin account created for {args.email}")
        else:
            promote_admin(database, args.email)
            print(f"{args.email} is now an admin")
    except AdminSetupError as e:
        logger.error("%s", e)
        raise SystemExit(1)
