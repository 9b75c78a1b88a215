"""User account management."""

import logging
from typing import Optional

from sqlalchemy import func, select
from werkzeug.security import check_password_hash, generate_password_hash

from ..config import get_config
from ..db.models import User
from ..db.schemas import UserRole
from ..db.sqlite import Database, get_db
from ..lending.models import Loan
from .schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserManager:
    """Manages library users."""

    def __init__(self, db: Optional[Database] = None, default_max_loans: Optional[int] = None):
        """Initialize user manager.

        Args:
            db: Database instance
            default_max_loans: Loan cap for new users when none is given
                (default: LIBRARYDESK_MAX_LOANS)
        """
        self.db = db or get_db()
        if default_max_loans is None:
            default_max_loans = get_config().default_max_loans
        self.default_max_loans = default_max_loans

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_user(self, data: UserCreate) -> User:
        """Register a user.

        Args:
            data: Registration data

        Returns:
            Created user

        Raises:
            ValueError: If the email is already registered
        """
        with self.db.get_session() as session:
            if self.db.get_user_by_email(data.email, session=session):
                raise ValueError(f"A user with email {data.email} already exists")

            user = User(
                email=data.email,
                password_hash=generate_password_hash(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                is_active=True,
                max_loans=(
                    data.max_loans if data.max_loans is not None else self.default_max_loans
                ),
            )
            roles = [UserRole.USER.value]
            if data.is_admin:
                roles.append(UserRole.ADMIN.value)
            user.set_roles(roles)

            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)

        logger.info("User created", extra={"user_id": user.id})
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get_user(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.get_user_by_email(email)

    def list_users(self, active_only: bool = False) -> list[User]:
        """List users ordered by last name."""
        with self.db.get_session() as session:
            stmt = select(User).order_by(User.last_name, User.first_name)
            if active_only:
                stmt = stmt.where(User.is_active.is_(True))

            users = session.execute(stmt).scalars().all()
            for u in users:
                session.expunge(u)
            return list(users)

    def update_user(self, user_id: str, data: UserUpdate) -> Optional[User]:
        return self._update(user_id, **data.model_dump(exclude_unset=True))

    def set_active(self, user_id: str, active: bool) -> Optional[User]:
        """Activate or deactivate an account.

        A deactivated user keeps their open loans but cannot borrow.
        """
        user = self._update(user_id, is_active=active)
        if user:
            logger.info(
                "User %s", "activated" if active else "deactivated", extra={"user_id": user_id}
            )
        return user

    def set_max_loans(self, user_id: str, max_loans: int) -> Optional[User]:
        """Change a user's loan cap.

        Raises:
            ValueError: If max_loans is negative
        """
        if max_loans < 0:
            raise ValueError("max_loans cannot be negative")
        return self._update(user_id, max_loans=max_loans)

    def grant_admin(self, user_id: str, admin: bool = True) -> Optional[User]:
        with self.db.get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return None

            roles = set(user.get_roles())
            if admin:
                roles.add(UserRole.ADMIN.value)
            else:
                roles.discard(UserRole.ADMIN.value)
            user.set_roles(list(roles))

            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def verify_password(self, email: str, password: str) -> Optional[User]:
        """Check credentials.

        Returns:
            The user when the password matches, None otherwise
        """
        user = self.db.get_user_by_email(email)
        if user and check_password_hash(user.password_hash, password):
            return user
        return None

    def count_open_loans(self, user_id: str) -> int:
        with self.db.get_session() as session:
            stmt = (
                select(func.count())
                .select_from(Loan)
                .where(Loan.user_id == user_id, Loan.returned_at.is_(None))
            )
            return session.execute(stmt).scalar() or 0

    def _update(self, user_id: str, **fields) -> Optional[User]:
        with self.db.get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return None

            for field, value in fields.items():
                setattr(user, field, value)

            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user
