"""
Bootstrap an administrator

Creates (if missing) the system roles, an admin user, a system owner and a
permanent membership that carries the admin role.

Run: python scripts/create_admin.py <username> <password> [email]
"""
import asyncio
import getpass
import logging
import sys

from security_api.core.config import settings
from security_api.core.database import Database
from security_api.models.membership import MembershipKind
from security_api.services.membership_service import MembershipService
from security_api.services.owner_service import OwnerService
from security_api.services.role_service import RoleService
from security_api.services.user_service import UserService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SYSTEM_OWNER = {
    "tax_id": "SYSTEM",
    "legal_id": "SYSTEM",
    "name": "System",
}


async def create_admin(username: str, password: str, email: str) -> None:
    database = Database.from_settings(settings)
    try:
        await database.create_all()

        async with database.session() as db:
            role_service = RoleService(db)
            await role_service.seed_system_roles()
            admin_role = await role_service.get_role_by_name(settings.ADMIN_ROLE_NAME)

            user_service = UserService(db)
            user = await user_service.get_user_by_username(username)
            if user:
                logger.info(f"User '{username}' already exists (id={user.id})")
            else:
                user = await user_service.create_user(
                    username=username,
                    password=password,
                    display_name="Administrator",
                    email=email,
                    created_by="system",
                )
                logger.info(f"Created user '{username}' (id={user.id})")

            owner_service = OwnerService(db)
            owners = await owner_service.search_owners(SYSTEM_OWNER["name"])
            owner = next((o for o in owners if o.tax_id == SYSTEM_OWNER["tax_id"]), None)
            if owner is None:
                owner = await owner_service.create_owner(SYSTEM_OWNER, created_by="system")
                logger.info(f"Created system owner (id={owner.id})")

            membership_service = MembershipService(db)
            roles = await user_service.list_roles(user.id)
            if settings.ADMIN_ROLE_NAME in roles:
                logger.info(f"'{username}' already holds the {settings.ADMIN_ROLE_NAME} role")
                return

            membership = await membership_service.create(
                user_id=user.id,
                owner_id=owner.id,
                kind=MembershipKind.PERMANENT,
                role_ids=[admin_role.id],
                created_by="system",
            )
            logger.info(f"Granted {settings.ADMIN_ROLE_NAME} to '{username}' via membership {membership.id}")
    finally:
        await database.dispose()


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/create_admin.py <username> [password] [email]", file=sys.stderr)
        raise SystemExit(2)

    username = sys.argv[1]
    password = sys.argv[2] if len(sys.argv) > 2 else getpass.getpass("Password: ")
    email = sys.argv[3] if len(sys.argv) > 3 else f"{username}@localhost.localdomain"
    asyncio.run(create_admin(username, password, email))


if __name__ == "__main__":
    main()
