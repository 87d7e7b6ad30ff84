"""User repository: subscription rows and the generation quota counter."""

import logging
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from herotime_api.db.models import User
from herotime_api.plans import FREE, generations_limit_for

logger = logging.getLogger(__name__)


class UserRepository:
    """Data access for ``users``."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def create_free(self, user_id: str, email: str) -> User:
        """Insert a free-tier row.

        Raises:
            IntegrityError: If the row already exists
        """
        user = User(
            id=user_id,
            email=email,
            plan=FREE,
            scheduled_plan=None,
            generations_used=0,
            generations_limit=generations_limit_for(FREE),
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(
            "User created on free tier",
            extra={"event": "user.created", "user_id": user_id},
        )
        return user

    def get_or_create(self, user_id: str, email: str) -> tuple[User, bool]:
        """Return the row, creating a free-tier one if absent.

        Returns:
            Tuple of (user, created)
        """
        user = self.get(user_id)
        if user is not None:
            return user, False
        try:
            return self.create_free(user_id, email), True
        except IntegrityError:
            # Concurrent first request created it
            self.db.rollback()
            user = self.get(user_id)
            if user is None:
                raise
            return user, False

    def update_fields(self, user_id: str, updates: dict[str, Any]) -> User:
        """Apply column updates and return the refreshed row.

        Raises:
            LookupError: If the user does not exist
        """
        user = self.get(user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        for key, value in updates.items():
            setattr(user, key, value)
        self.db.commit()
        self.db.refresh(user)
        return user

    def try_consume_generation(self, user_id: str) -> bool:
        """Atomically take one unit of generation quota.

        Single conditional UPDATE (increment-if-under-limit), so concurrent
        requests cannot oversubscribe the quota.

        Returns:
            True if a unit was taken, False if the user is missing or at limit
        """
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                User.generations_used < User.generations_limit,
            )
            .values(generations_used=User.generations_used + 1)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

    def release_generation(self, user_id: str) -> bool:
        """Give back one unit taken by ``try_consume_generation``.

        Returns:
            True if the counter was decremented
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.generations_used > 0)
            .values(generations_used=User.generations_used - 1)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1
