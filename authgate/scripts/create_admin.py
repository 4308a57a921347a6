"""
One-time bootstrap script — creates the first systemAdmin principal.

Usage:
    uv run python -m authgate.scripts.create_admin

You only need this ONCE. After the first admin exists, every other
principal signs up through POST /api/auth/{role_type}/join.
"""

import asyncio
import getpass

from authgate.core.config import settings
from authgate.core.credentials import LocalCredential
from authgate.core.errors import AuthError
from authgate.core.roles import RoleType
from authgate.services.registry import build_services


async def create_admin() -> None:
    services = build_services(settings)

    try:
        # ── Collect input ────────────────────────────────────────────
        print(f"\n🔧  {settings.APP_NAME} — First systemAdmin Setup\n")
        email = input("  Admin email: ").strip()
        full_name = input("  Full name:   ").strip()
        password = getpass.getpass("  Password:    ")
        confirm = getpass.getpass("  Confirm:     ")

        if password != confirm:
            print("\n❌  Passwords do not match.")
            return

        if not email or not password:
            print("\n❌  Email and password are required.")
            return

        # ── Create the admin principal ───────────────────────────────
        try:
            result = await services.identity.join(
                RoleType.SYSTEM_ADMIN,
                None,
                LocalCredential(email=email, password=password),
                {"full_name": full_name} if full_name else {},
                user_agent="create_admin",
            )
        except AuthError as exc:
            print(f"\n❌  {exc.message}.")
            return

        # The bootstrap session is not needed; close it right away.
        await services.identity.logout(result.principal, result.token.session_id)

        print("\n✅  systemAdmin created successfully!")
        print(f"    ID:    {result.principal.id}")
        print(f"    Email: {email}")
        print("\n   You can now log in via POST /api/auth/systemAdmin/login\n")
    finally:
        await services.storage.close()


if __name__ == "__main__":
    asyncio.run(create_admin())
