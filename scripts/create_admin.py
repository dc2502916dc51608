#!/usr/bin/env python3
"""
Script to create a staff account (admin or officer).
"""
import sys
from getpass import getpass
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import UserRole
from services.auth_service import AuthService
from core.exceptions import PortalError
import config


def create_admin():
    """Create an admin or officer user."""
    # Initialize database
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()
    config.db.ensure_system_user(config.SMS_SYSTEM_SENDER_ID)

    print("Creating staff user...")
    print("=" * 50)

    # Get user input
    email = input("Email: ").strip()
    full_name = input("Full name: ").strip()
    password = getpass("Password: ")
    confirm_password = getpass("Confirm password: ")
    role_input = (input("Role [admin/officer] (default admin): ").strip() or "admin").lower()

    if role_input not in (UserRole.ADMIN.value, UserRole.OFFICER.value):
        print(f"Error: role must be admin or officer, got {role_input}")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = AuthService.register(
                db=db,
                email=email,
                password=password,
                confirm_password=confirm_password,
                full_name=full_name,
                role=UserRole(role_input)
            )
            print("\n✓ Staff user created successfully!")
            print(f"  Email: {user.email}")
            print(f"  Role: {user.role.value}")
    except PortalError as e:
        print(f"\n✗ Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
