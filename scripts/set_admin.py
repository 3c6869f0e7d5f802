#!/usr/bin/env python3
"""
Grant the admin role to an existing user.

Usage:
    python scripts/set_admin.py <user-email-or-id>

Sets users.role = 'admin' and records the 'admin' role assignment.
Uses DATABASE_URL from the environment or .env.
"""
import argparse
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Grant admin access to a JobBridge user")
    parser.add_argument("email_or_id", help="User email address or user id")
    args = parser.parse_args(argv)

    load_dotenv()
    from jobbridge.features.users.service import find_user, grant_admin

    user = find_user(args.email_or_id)
    if user is None:
        print(f"User not found: {args.email_or_id}", file=sys.stderr)
        return 1

    updated = grant_admin(user.id)
    print("User set as admin:")
    print(f"   ID: {updated.id}")
    print(f"   Email: {updated.email}")
    print(f"   Role: {updated.role}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
