"""
User Service - credential store

Owns user identity, hashed secret and status. Users are never hard-deleted.
"""
import logging
from typing import Optional, List, Dict, Any, Set, Tuple

from sqlalchemy import select, and_, or_, func, update
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from security_api.core.clock import utcnow
from security_api.core.exceptions import Conflict, NotFound
from security_api.core.security import get_password_hash, verify_password
from security_api.models.membership import Membership, RoleMembership, active_membership_clause
from security_api.models.role import Role
from security_api.models.user import User, UserStatus
from security_api.services.base import LIKE_ESCAPE, apply_changes, contains_pattern

logger = logging.getLogger(__name__)

# Only checked when no user matches, so unknown usernames cost a bcrypt round too
_DUMMY_HASH = get_password_hash("timing-equaliser")

USER_UPDATABLE_FIELDS = ("username", "display_name", "email", "phone", "status")


class UserService:
    """
    Service for user management operations.

    Features:
    - Registration with unique usernames
    - Credential verification that never reveals which factor failed
    - Password rotation
    - Role resolution through active memberships
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # Lookups
    # ============================================================

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def list_users(
        self,
        search: Optional[str] = None,
        status: Optional[UserStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[User], int]:
        """
        List users with filtering and pagination.

        Returns:
            Tuple of (users, total_count)
        """
        conditions = []

        if search:
            search_pattern = contains_pattern(search)
            conditions.append(
                or_(
                    func.lower(User.username).like(search_pattern, escape=LIKE_ESCAPE),
                    func.lower(User.display_name).like(search_pattern, escape=LIKE_ESCAPE),
                    func.lower(User.email).like(search_pattern, escape=LIKE_ESCAPE),
                )
            )

        if status is not None:
            conditions.append(User.status == status)

        count_result = await self.db.execute(
            select(func.count(User.id)).where(and_(*conditions))
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(User)
            .where(and_(*conditions))
            .order_by(User.username)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    # ============================================================
    # Mutations
    # ============================================================

    async def create_user(
        self,
        username: str,
        password: str,
        display_name: str,
        email: str,
        phone: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> User:
        """
        Create a new user with status ACTIVE.

        Raises:
            Conflict: If the username is already taken
        """
        if await self.get_user_by_username(username):
            raise Conflict("Username already exists")

        user = User(
            username=username,
            password_hash=get_password_hash(password),
            display_name=display_name,
            email=email,
            phone=phone,
            status=UserStatus.ACTIVE,
            created_by=created_by or username,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"User created: id={user.id} username={username}")
        return user

    async def update_user(
        self,
        user_id: int,
        changes: Dict[str, Any],
        updated_by: str,
    ) -> Optional[User]:
        """
        Partially update a user; keys absent from changes keep their value.

        Returns:
            Updated user or None if not found

        Raises:
            Conflict: If renaming to a username that is taken
        """
        user = await self.get_user_by_id(user_id)
        if not user:
            return None

        new_username = changes.get("username")
        if new_username and new_username != user.username:
            existing = await self.get_user_by_username(new_username)
            if existing and existing.id != user_id:
                raise Conflict("Username already exists")

        apply_changes(user, changes, USER_UPDATABLE_FIELDS, updated_by=updated_by)
        await self.db.flush()
        return user

    async def deactivate_user(self, user_id: int, updated_by: str) -> Optional[User]:
        """Flip status to BLOCKED. Users are never physically removed."""
        user = await self.get_user_by_id(user_id)
        if not user:
            return None
        user.status = UserStatus.BLOCKED
        user.updated_by = updated_by
        user.updated_at = utcnow()
        await self.db.flush()
        return user

    # ============================================================
    # Credentials
    # ============================================================

    async def verify_credentials(self, username: str, password: str) -> Optional[User]:
        """
        Check a username/password pair.

        Returns the user on success and None otherwise. An unknown username
        and a wrong password are indistinguishable to the caller.
        """
        user = await self.get_user_by_username(username)
        if user is None:
            verify_password(password, _DUMMY_HASH)
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def set_password(self, user_id: int, password: str, updated_by: Optional[str] = None) -> User:
        """
        Store a fresh hash of the new password.

        Raises:
            NotFound: If the user does not exist
        """
        user = await self.get_user_by_id(user_id)
        if not user:
            raise NotFound("User", user_id)

        user.password_hash = get_password_hash(password)
        user.updated_at = utcnow()
        user.updated_by = updated_by or user.username
        await self.db.flush()
        logger.info(f"Password changed for user {user_id}")
        return user

    async def touch_last_access(self, user_id: int) -> None:
        """
        Record the login time. Failures are logged and ignored.

        A User already loaded in this session picks up the new value.
        """
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(last_access_at=utcnow())
                    .execution_options(synchronize_session="evaluate")
                )
        except SQLAlchemyError as e:
            logger.warning(f"Could not update last access for user {user_id}: {e}")

    # ============================================================
    # Roles
    # ============================================================

    async def list_roles(self, user_id: int) -> Set[str]:
        """
        Names of the live roles granted to the user through active memberships.

        Returns an empty set when nothing resolves, including when the
        role membership table does not exist yet.
        """
        query = (
            select(Role.name)
            .join(RoleMembership, RoleMembership.role_id == Role.id)
            .join(Membership, Membership.id == RoleMembership.membership_id)
            .where(Membership.user_id == user_id)
            .where(active_membership_clause())
            .where(Role.deleted.is_(False))
        )
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(query)
                return {row[0] for row in result.fetchall()}
        except (ProgrammingError, OperationalError) as e:
            logger.warning(f"Role lookup unavailable for user {user_id}: {e}")
            return set()

    # ============================================================
    # Display
    # ============================================================

    def format_user_for_display(self, user: User) -> Dict[str, Any]:
        """Public view of a user; never includes the password hash."""
        return {
            "id": user.id,
            "username": user.username,
            "display_name": user.display_name,
            "email": user.email,
            "phone": user.phone,
            "status": user.status.value if user.status else None,
            "created_by": user.created_by,
            "created_at": user.created_at,
            "updated_by": user.updated_by,
            "updated_at": user.updated_at,
            "last_access_at": user.last_access_at,
        }
