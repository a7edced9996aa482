import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from trudify.models import CompletedTaskItem, Pagination, ProfessionalRecord, ProfessionalReviewItem
from trudify.services.featured_ranking import FEATURED_LIMIT, FeaturedRanking, with_featured_status
from trudify.services.marketplace_db import ELIGIBLE_PROFESSIONAL_SQL, MarketplaceDB, row_to_professional
from trudify.services.query_parser import MOST_ACTIVE_THRESHOLD, ProfessionalQueryParams

logger = logging.getLogger(__name__)

SORT_CLAUSES = {
    "rating": "u.average_rating IS NULL, u.average_rating DESC, u.total_reviews DESC, u.id",
    "jobs": "u.tasks_completed DESC, u.id",
    "newest": "u.created_at DESC, u.id",
    "featured": "u.average_rating IS NULL, u.average_rating DESC, u.tasks_completed DESC, u.id",
}

DETAIL_TASKS_LIMIT = 20
DETAIL_REVIEWS_LIMIT = 50
ANONYMOUS_CLIENT = "Anonymous Customer"


@dataclass
class ProfessionalPage:
    professionals: List[ProfessionalRecord]
    featured_professionals: List[ProfessionalRecord]
    pagination: Pagination


@dataclass
class ProfessionalDetailData:
    professional: ProfessionalRecord
    completed_tasks: List[CompletedTaskItem]
    reviews: List[ProfessionalReviewItem]


def task_complexity(budget: float, duration_hours: float) -> str:
    if budget > 150 or duration_hours > 6:
        return "complex"
    if budget < 60 and duration_hours < 2:
        return "simple"
    return "standard"


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


def featured_first(professionals: List[ProfessionalRecord]) -> List[ProfessionalRecord]:
    return sorted(
        professionals,
        key=lambda p: (not p.featured, -(p.average_rating or 0.0), -p.tasks_completed),
    )


class ProfessionalRepository:
    def __init__(self, db: MarketplaceDB, featured: Optional[FeaturedRanking] = None) -> None:
        self.db = db
        self.featured = featured or FeaturedRanking(db)

    def _filters(self, params: ProfessionalQueryParams) -> Tuple[str, List[Any]]:
        clauses = [ELIGIBLE_PROFESSIONAL_SQL]
        args: List[Any] = []
        if params.category:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(u.service_categories_json) AS c WHERE c.value = ?)"
            )
            args.append(params.category)
        if params.city:
            clauses.append("u.city = ?")
            args.append(params.city)
        if params.neighborhood:
            clauses.append("u.neighborhood = ?")
            args.append(params.neighborhood)
        if params.min_rating is not None:
            clauses.append("u.average_rating >= ?")
            args.append(params.min_rating)
        if params.min_jobs is not None:
            clauses.append("u.tasks_completed >= ?")
            args.append(params.min_jobs)
        if params.verified:
            clauses.append("(COALESCE(u.is_phone_verified, 0) = 1 OR COALESCE(u.is_email_verified, 0) = 1)")
        if params.most_active:
            clauses.append("u.tasks_completed > ?")
            args.append(MOST_ACTIVE_THRESHOLD)
        return " AND ".join(clauses), args

    def get_professionals(self, params: ProfessionalQueryParams) -> ProfessionalPage:
        where, args = self._filters(params)
        order_by = SORT_CLAUSES.get(params.sort_by, SORT_CLAUSES["featured"])

        with self.db.connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM users u WHERE {where}", tuple(args)).fetchone()[0]
            rows = conn.execute(
                f"SELECT u.* FROM users u WHERE {where} ORDER BY {order_by} LIMIT ? OFFSET ?",
                tuple(args) + (params.limit, params.offset),
            ).fetchall()

        professionals = [with_featured_status(row_to_professional(row)) for row in rows]
        if params.sort_by == "featured":
            professionals = featured_first(professionals)

        featured = self.featured.get_featured_professionals(FEATURED_LIMIT)
        logger.debug("Fetched %s of %s professionals (page %s)", len(professionals), total, params.page)
        return ProfessionalPage(
            professionals=professionals,
            featured_professionals=featured,
            pagination=build_pagination(params.page, params.limit, int(total)),
        )

    def get_professional_by_id(self, professional_id: str) -> Optional[ProfessionalRecord]:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT u.* FROM users u WHERE u.id = ? AND {ELIGIBLE_PROFESSIONAL_SQL}",
                (professional_id,),
            ).fetchone()
        return with_featured_status(row_to_professional(row)) if row else None

    def get_professional_detail(self, professional_id: str) -> Optional[ProfessionalDetailData]:
        """Profile with completed work and received customer reviews; tasks_completed is the live count."""
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT u.* FROM users u WHERE u.id = ? AND {ELIGIBLE_PROFESSIONAL_SQL}",
                (professional_id,),
            ).fetchone()
            if row is None:
                return None
            completed_count = conn.execute(
                """
                SELECT COUNT(*) FROM tasks
                WHERE selected_professional_id = ? AND status = 'completed' AND completed_at IS NOT NULL
                """,
                (professional_id,),
            ).fetchone()[0]
            task_rows = conn.execute(
                """
                SELECT
                    t.id, t.title, t.category, t.subcategory, t.city, t.completed_at,
                    t.budget_min_bgn, t.budget_max_bgn,
                    a.estimated_duration_hours,
                    c.full_name AS client_name, c.avatar_url AS client_avatar_url,
                    c.is_phone_verified AS client_phone_verified,
                    c.is_email_verified AS client_email_verified,
                    r.rating AS review_rating, r.comment AS review_comment
                FROM tasks t
                LEFT JOIN users c ON c.id = t.customer_id
                LEFT JOIN applications a
                    ON a.task_id = t.id AND a.professional_id = t.selected_professional_id AND a.status = 'accepted'
                LEFT JOIN reviews r ON r.task_id = t.id AND r.reviewee_id = t.selected_professional_id
                WHERE t.selected_professional_id = ? AND t.status = 'completed' AND t.completed_at IS NOT NULL
                GROUP BY t.id
                ORDER BY t.completed_at DESC, t.id
                LIMIT ?
                """,
                (professional_id, DETAIL_TASKS_LIMIT),
            ).fetchall()
            review_rows = conn.execute(
                """
                SELECT
                    r.id, r.rating, r.comment, r.quality_rating, r.timeliness_rating,
                    r.communication_rating, r.created_at,
                    u.full_name AS client_name, u.avatar_url AS client_avatar_url,
                    t.title AS task_title
                FROM reviews r
                LEFT JOIN users u ON u.id = r.reviewer_id
                LEFT JOIN tasks t ON t.id = r.task_id
                WHERE r.reviewee_id = ? AND r.reviewer_type = 'customer'
                ORDER BY r.created_at DESC, r.id
                LIMIT ?
                """,
                (professional_id, DETAIL_REVIEWS_LIMIT),
            ).fetchall()

        professional = with_featured_status(row_to_professional(row))
        professional = professional.model_copy(update={"tasks_completed": int(completed_count)})
        return ProfessionalDetailData(
            professional=professional,
            completed_tasks=[self._completed_task_item(task_row) for task_row in task_rows],
            reviews=[
                ProfessionalReviewItem(
                    id=review_row["id"],
                    task_title=review_row["task_title"],
                    rating=review_row["rating"],
                    comment=review_row["comment"] or "",
                    quality_rating=review_row["quality_rating"],
                    timeliness_rating=review_row["timeliness_rating"],
                    communication_rating=review_row["communication_rating"],
                    client_name=review_row["client_name"] or ANONYMOUS_CLIENT,
                    client_avatar_url=review_row["client_avatar_url"],
                    created_at=review_row["created_at"],
                )
                for review_row in review_rows
            ],
        )

    @staticmethod
    def _completed_task_item(row: Any) -> CompletedTaskItem:
        budget = row["budget_max_bgn"] or row["budget_min_bgn"] or 0
        duration = row["estimated_duration_hours"] or 0
        return CompletedTaskItem(
            id=row["id"],
            title=row["title"],
            category=row["subcategory"] or row["category"],
            city=row["city"],
            completed_at=row["completed_at"],
            budget_bgn=budget,
            complexity=task_complexity(budget, duration),
            client_name=row["client_name"] or ANONYMOUS_CLIENT,
            client_avatar_url=row["client_avatar_url"],
            client_verified=bool(row["client_phone_verified"] or row["client_email_verified"]),
            client_rating=row["review_rating"],
            testimonial=row["review_comment"] or None,
        )
