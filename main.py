#!/usr/bin/env python3
"""
OrgVault -- admin command line for bootstrapping and inspecting the vault.

Usage:
  python main.py create-admin --email admin@example.com --firstname Ada --lastname Lovelace
  python main.py create-ou "East"
  python main.py create-division "Sales" --ou-id 1
  python main.py list

Environment variables:
  DATABASE_URL  Same database the API uses (default: orgvault.db beside the package).
  SECRET_KEY    Required unless DEBUG=true; loaded by core.config.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import VaultError
from core.models import Role
from core.schema import create_db_engine
from org.hierarchy import HierarchyStore


def _prompt_password() -> Optional[str]:
    """Ask twice for a password. Returns None if the entries differ or are too short."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    if not 8 <= len(first) <= 72:
        print("  [!] Password must be 8 to 72 characters.")
        return None
    return first


def cmd_create_admin(args: argparse.Namespace, users: UserStore) -> int:
    password = args.password or _prompt_password()
    if password is None:
        return 1
    user_id = users.create_user(
        User(
            firstname=args.firstname,
            lastname=args.lastname,
            email=args.email,
            role=Role.admin,
            hashed_password=hash_password(password),
        )
    )
    print(f"  Admin created (id={user_id}).")
    return 0


def cmd_create_ou(args: argparse.Namespace, hierarchy: HierarchyStore) -> int:
    ou = hierarchy.create_ou(args.name)
    print(f"  OU '{ou.name}' created (id={ou.id}).")
    return 0


def cmd_create_division(args: argparse.Namespace, hierarchy: HierarchyStore) -> int:
    division = hierarchy.create_division(args.name, args.ou_id)
    print(f"  Division '{division.name}' created in '{division.ou_name}' (id={division.id}).")
    return 0


def cmd_list(hierarchy: HierarchyStore) -> int:
    ous = hierarchy.list_ous()
    if not ous:
        print("  No OUs yet. Create one with: python main.py create-ou NAME")
        return 0
    by_ou: dict[int, list[str]] = {}
    for division in hierarchy.list_divisions():
        by_ou.setdefault(division.ou_id, []).append(f"{division.name} (id={division.id})")
    for ou in ous:
        managers = ", ".join(str(m) for m in ou.managers) or "none"
        print(f"  {ou.name} (id={ou.id}, managers: {managers})")
        for line in by_ou.get(ou.id, []):
            print(f"    - {line}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="orgvault",
        description="Administer the OrgVault OU / Division hierarchy.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --firstname Ada --lastname Lovelace
  python main.py create-ou "East"
  python main.py create-division "Sales" --ou-id 1
  python main.py list
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = sub.add_parser("create-admin", help="Create an admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--firstname", required=True)
    admin.add_argument("--lastname", required=True)
    admin.add_argument("--password", help=argparse.SUPPRESS)

    ou = sub.add_parser("create-ou", help="Create an Organisational Unit")
    ou.add_argument("name", metavar="NAME")

    division = sub.add_parser("create-division", help="Create a division inside an OU")
    division.add_argument("name", metavar="NAME")
    division.add_argument("--ou-id", type=int, required=True, metavar="N")

    sub.add_parser("list", help="Print OUs with their divisions and managers")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    engine = create_db_engine()
    try:
        if args.command == "create-admin":
            return cmd_create_admin(args, UserStore(engine))
        hierarchy = HierarchyStore(engine)
        if args.command == "create-ou":
            return cmd_create_ou(args, hierarchy)
        if args.command == "create-division":
            return cmd_create_division(args, hierarchy)
        return cmd_list(hierarchy)
    except VaultError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
