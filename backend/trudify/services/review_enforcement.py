import logging

from trudify.models import CanCreateTaskResponse, Review, ReviewCreateRequest
from trudify.services.marketplace_db import (
    MarketplaceConflictError,
    MarketplaceDB,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    new_id,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

HARD_BLOCK_THRESHOLD = 3


class ReviewBlockError(MarketplaceConflictError):
    code = "review_required"


class ReviewConflictError(MarketplaceConflictError):
    code = "review_not_allowed"


class ReviewEnforcement:
    """Customers with completed but unreviewed tasks are nudged (soft block) or stopped (hard block)."""

    def __init__(self, db: MarketplaceDB) -> None:
        self.db = db

    def count_unreviewed(self, customer_id: str) -> int:
        with self.db.connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM tasks
                WHERE customer_id = ? AND status = 'completed'
                  AND selected_professional_id IS NOT NULL
                  AND COALESCE(reviewed_by_customer, 0) = 0
                """,
                (customer_id,),
            ).fetchone()
        return int(row[0])

    def check_can_create_task(self, customer_id: str) -> CanCreateTaskResponse:
        unreviewed = self.count_unreviewed(customer_id)
        if unreviewed >= HARD_BLOCK_THRESHOLD:
            return CanCreateTaskResponse(
                can_create=False,
                block_type="hard_block",
                unreviewed_count=unreviewed,
                message=f"Please review your {unreviewed} completed tasks before creating a new one",
            )
        if unreviewed > 0:
            return CanCreateTaskResponse(
                can_create=True,
                block_type="soft_block",
                unreviewed_count=unreviewed,
                message="You have completed tasks waiting for a review",
            )
        return CanCreateTaskResponse(can_create=True, unreviewed_count=0)

    def ensure_can_create_task(self, customer_id: str) -> CanCreateTaskResponse:
        status = self.check_can_create_task(customer_id)
        if not status.can_create:
            raise ReviewBlockError(status.message or "Pending reviews must be completed first")
        return status

    def submit_review(self, task_id: str, reviewer_id: str, request: ReviewCreateRequest) -> Review:
        now = utc_now_iso()
        review_id = new_id("rev")
        with self.db.connect() as conn:
            task = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if task is None:
                raise MarketplaceNotFoundError("Task not found")
            if task["customer_id"] != reviewer_id:
                raise MarketplacePermissionError("Only the customer can review this task")
            if task["status"] != "completed" or not task["selected_professional_id"]:
                raise ReviewConflictError("Only completed tasks can be reviewed")
            existing = conn.execute(
                "SELECT 1 FROM reviews WHERE task_id = ? AND reviewer_id = ?",
                (task_id, reviewer_id),
            ).fetchone()
            if existing is not None:
                raise ReviewConflictError("You have already reviewed this task")

            conn.execute(
                """
                INSERT INTO reviews (
                    id, task_id, reviewer_id, reviewee_id, reviewer_type, rating,
                    quality_rating, timeliness_rating, communication_rating, comment, created_at
                ) VALUES (?, ?, ?, ?, 'customer', ?, ?, ?, ?, ?, ?)
                """,
                (
                    review_id,
                    task_id,
                    reviewer_id,
                    task["selected_professional_id"],
                    request.rating,
                    request.quality_rating,
                    request.timeliness_rating,
                    request.communication_rating,
                    request.comment.strip(),
                    now,
                ),
            )
            conn.execute(
                "UPDATE tasks SET reviewed_by_customer = 1, updated_at = ? WHERE id = ?",
                (now, task_id),
            )
            reviewee_id = task["selected_professional_id"]
        logger.info("Review %s submitted for task %s", review_id, task_id)
        return Review(
            id=review_id,
            task_id=task_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=request.rating,
            quality_rating=request.quality_rating,
            timeliness_rating=request.timeliness_rating,
            communication_rating=request.communication_rating,
            comment=request.comment.strip(),
            created_at=now,
        )
