import logging
from typing import List

from trudify.models import ProfessionalRecord
from trudify.services.marketplace_db import ELIGIBLE_PROFESSIONAL_SQL, MarketplaceDB, row_to_professional
from trudify.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

MATCH_POOL_SIZE = 100


def serves_city(professional: ProfessionalRecord, city: str) -> bool:
    return professional.city == city or city in professional.service_area_cities


class ProfessionalMatcher:
    def __init__(self, db: MarketplaceDB, notification_store: NotificationStore) -> None:
        self.db = db
        self.notification_store = notification_store

    def find_matching_professionals(
        self,
        *,
        task_id: str,
        category: str,
        city: str,
        customer_id: str,
        limit: int = 10,
    ) -> List[ProfessionalRecord]:
        """Eligible professionals in the category who serve the city and were not invited to this task yet."""
        with self.db.connect() as conn:
            rows = conn.execute(
                f"""
                SELECT u.* FROM users u
                WHERE {ELIGIBLE_PROFESSIONAL_SQL}
                  AND EXISTS (SELECT 1 FROM json_each(u.service_categories_json) AS c WHERE c.value = ?)
                  AND u.id != ?
                ORDER BY u.rowid
                LIMIT ?
                """,
                (category, customer_id, MATCH_POOL_SIZE),
            ).fetchall()

        candidates = [row_to_professional(row) for row in rows]
        local = [professional for professional in candidates if serves_city(professional, city)]
        if not local:
            return []

        already_invited = self.notification_store.invited_user_ids(task_id)
        matches = [professional for professional in local if professional.id not in already_invited]
        logger.debug(
            "Matching for task %s: %s in category, %s local, %s not yet invited",
            task_id,
            len(candidates),
            len(local),
            len(matches),
        )
        return matches[:limit]
