"""Generation repository.

Status only moves forward: starting → processing → (succeeded | failed).
Every transition is a conditional UPDATE guarded on the allowed predecessor
statuses, so a late writer can never move a finished row backwards.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from herotime_api.db.models import (
    GENERATION_FAILED,
    GENERATION_PROCESSING,
    GENERATION_STARTING,
    GENERATION_SUCCEEDED,
    IN_FLIGHT_STATUSES,
    Generation,
)


class GenerationRepository:
    """Data access for ``generations`` (always scoped to the owning user)."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        *,
        status: str = GENERATION_STARTING,
        uploaded_image_url: Optional[str] = None,
        image_url: Optional[str] = None,
        selected_props: Optional[list[dict[str, Any]]] = None,
        selected_template: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Generation:
        generation = Generation(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            status=status,
            uploaded_image_url=uploaded_image_url,
            image_url=image_url,
            selected_props=selected_props,
            selected_template=selected_template,
        )
        self.db.add(generation)
        self.db.commit()
        self.db.refresh(generation)
        return generation

    def get_for_user(self, generation_id: str, user_id: str) -> Optional[Generation]:
        stmt = select(Generation).where(
            Generation.id == generation_id,
            Generation.user_id == user_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_user(self, user_id: str, page: int, limit: int) -> Sequence[Generation]:
        """Newest first; ``page`` is 1-based."""
        stmt = (
            select(Generation)
            .where(Generation.user_id == user_id)
            .order_by(Generation.created_at.desc(), Generation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return self.db.execute(stmt).scalars().all()

    def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(Generation).where(Generation.user_id == user_id)
        return int(self.db.execute(stmt).scalar_one())

    def delete_for_user(self, generation_id: str, user_id: str) -> int:
        """Hard delete, scoped to the owner.

        Returns:
            Number of rows removed (0 for unknown ids or other users' rows)
        """
        stmt = delete(Generation).where(
            Generation.id == generation_id,
            Generation.user_id == user_id,
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Forward-only status transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        generation_id: str,
        allowed_from: tuple[str, ...],
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.status.in_(allowed_from),
            )
            .values(updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

    def mark_processing(self, generation_id: str, prediction_id: str) -> bool:
        return self._transition(
            generation_id,
            (GENERATION_STARTING,),
            {"status": GENERATION_PROCESSING, "prediction_id": prediction_id},
        )

    def mark_succeeded(
        self, generation_id: str, image_url: str, file_size: Optional[str]
    ) -> bool:
        if not image_url:
            raise ValueError("A succeeded generation requires an image_url")
        return self._transition(
            generation_id,
            IN_FLIGHT_STATUSES,
            {"status": GENERATION_SUCCEEDED, "image_url": image_url, "file_size": file_size},
        )

    def mark_failed(self, generation_id: str, error: str) -> bool:
        return self._transition(
            generation_id,
            IN_FLIGHT_STATUSES,
            {"status": GENERATION_FAILED, "error": error},
        )

    def find_stale_in_flight(self, older_than: datetime, limit: int = 100) -> Sequence[Generation]:
        """In-flight rows whose last update is older than ``older_than``."""
        stmt = (
            select(Generation)
            .where(
                Generation.status.in_(IN_FLIGHT_STATUSES),
                Generation.updated_at < older_than,
            )
            .order_by(Generation.updated_at.asc())
            .limit(limit)
        )
        return self.db.execute(stmt).scalars().all()
