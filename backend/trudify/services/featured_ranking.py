import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from trudify.models import ProfessionalRecord
from trudify.services.marketplace_db import (
    ELIGIBLE_PROFESSIONAL_SQL,
    MarketplaceDB,
    row_to_professional,
    utc_now,
)

logger = logging.getLogger(__name__)

FEATURED_LIMIT = 20
CANDIDATE_POOL_SIZE = 50
MAX_PER_CATEGORY = 2
DEFAULT_PRIMARY_CATEGORY = "other"

FEATURED_MIN_RATING = 4.8
FEATURED_MIN_REVIEWS = 10
FEATURED_MIN_TASKS = 100
LONG_BIO_LENGTH = 150
HIGH_RATING = 4.5


def calculate_featured_status(professional: ProfessionalRecord) -> bool:
    if professional.is_vat_verified:
        return True
    rating = professional.average_rating or 0.0
    if rating >= FEATURED_MIN_RATING and professional.total_reviews >= FEATURED_MIN_REVIEWS:
        return True
    return professional.tasks_completed >= FEATURED_MIN_TASKS


def with_featured_status(professional: ProfessionalRecord) -> ProfessionalRecord:
    return professional.model_copy(update={"featured": calculate_featured_status(professional)})


def quality_score(professional: ProfessionalRecord) -> int:
    score = 0
    if professional.avatar_url:
        score += 3
    if professional.bio and len(professional.bio) > LONG_BIO_LENGTH:
        score += 2
    if professional.total_reviews > 0 and professional.average_rating is not None:
        score += 2
    if professional.is_vat_verified:
        score += 3
    if (professional.average_rating or 0.0) >= HIGH_RATING:
        score += 2
    return score


def primary_category(professional: ProfessionalRecord) -> str:
    if professional.service_categories:
        return professional.service_categories[0]
    return DEFAULT_PRIMARY_CATEGORY


def apply_diversity_shuffle(professionals: Sequence[ProfessionalRecord], limit: int) -> List[ProfessionalRecord]:
    """Admit at most MAX_PER_CATEGORY per primary category, then fill up in original order."""
    selected: List[ProfessionalRecord] = []
    selected_ids: Set[str] = set()
    per_category: Dict[str, int] = {}

    for professional in professionals:
        if len(selected) >= limit:
            break
        category = primary_category(professional)
        if per_category.get(category, 0) < MAX_PER_CATEGORY:
            selected.append(professional)
            selected_ids.add(professional.id)
            per_category[category] = per_category.get(category, 0) + 1

    if len(selected) < limit:
        for professional in professionals:
            if len(selected) >= limit:
                break
            if professional.id not in selected_ids:
                selected.append(professional)
                selected_ids.add(professional.id)

    return selected


class FeaturedRanking:
    def __init__(self, db: MarketplaceDB) -> None:
        self.db = db

    def get_featured_professionals(
        self,
        limit: int = FEATURED_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[ProfessionalRecord]:
        if limit <= 0:
            return []
        now_iso = (now or utc_now()).isoformat()
        flagged = self._fetch_flagged(limit, now_iso)
        if len(flagged) >= limit:
            return apply_diversity_shuffle(flagged, limit)

        fallback = self._fetch_by_quality(limit - len(flagged), exclude_ids=[p.id for p in flagged])
        logger.debug("Featured ranking: %s flagged, %s quality fallback", len(flagged), len(fallback))
        return apply_diversity_shuffle(flagged + fallback, limit)

    def _fetch_flagged(self, limit: int, now_iso: str) -> List[ProfessionalRecord]:
        query = f"""
            SELECT u.* FROM users u
            WHERE {ELIGIBLE_PROFESSIONAL_SQL}
              AND (
                COALESCE(u.is_featured, 0) = 1
                OR COALESCE(u.is_early_adopter, 0) = 1
                OR (
                  COALESCE(u.is_top_professional, 0) = 1
                  AND julianday(u.top_professional_until) >= julianday(?)
                )
              )
            ORDER BY u.created_at DESC, u.id
            LIMIT ?
        """
        with self.db.connect() as conn:
            rows = conn.execute(query, (now_iso, limit)).fetchall()
        return [with_featured_status(row_to_professional(row)) for row in rows]

    def _fetch_by_quality(self, needed: int, exclude_ids: List[str]) -> List[ProfessionalRecord]:
        query = f"SELECT u.* FROM users u WHERE {ELIGIBLE_PROFESSIONAL_SQL}"
        args: List[object] = []
        if exclude_ids:
            query += f" AND u.id NOT IN ({', '.join('?' for _ in exclude_ids)})"
            args.extend(exclude_ids)
        query += " ORDER BY u.created_at DESC, u.id LIMIT ?"
        args.append(CANDIDATE_POOL_SIZE)
        with self.db.connect() as conn:
            rows = conn.execute(query, tuple(args)).fetchall()

        candidates = [with_featured_status(row_to_professional(row)) for row in rows]
        # sorted() is stable, so equal scores keep recency order.
        ranked = sorted(candidates, key=quality_score, reverse=True)
        return ranked[:needed]
