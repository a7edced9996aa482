import logging

from trudify.models import Task, TaskCreateRequest
from trudify.services.auto_invite import AutoInviteTaskData
from trudify.services.marketplace_db import MarketplaceDB, MarketplaceNotFoundError, MarketplaceValidationError
from trudify.services.review_enforcement import ReviewEnforcement

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, db: MarketplaceDB, reviews: ReviewEnforcement) -> None:
        self.db = db
        self.reviews = reviews

    def create_task(self, customer_id: str, request: TaskCreateRequest) -> Task:
        if (
            request.budget_min_bgn is not None
            and request.budget_max_bgn is not None
            and request.budget_min_bgn > request.budget_max_bgn
        ):
            raise MarketplaceValidationError("Minimum budget cannot exceed maximum budget")
        if self.db.get_user(customer_id) is None:
            raise MarketplaceNotFoundError("Customer not found")
        self.reviews.ensure_can_create_task(customer_id)

        task = self.db.insert_task(
            customer_id=customer_id,
            title=request.title.strip(),
            description=request.description.strip(),
            category=request.category.strip().lower(),
            subcategory=request.subcategory,
            city=request.city.strip(),
            neighborhood=request.neighborhood,
            budget_min_bgn=request.budget_min_bgn,
            budget_max_bgn=request.budget_max_bgn,
            budget_type=request.budget_type,
        )
        logger.info("Task %s created by %s in %s/%s", task.id, customer_id, task.category, task.city)
        return task

    def get_task(self, task_id: str) -> Task:
        task = self.db.get_task(task_id)
        if task is None:
            raise MarketplaceNotFoundError("Task not found")
        return task

    def invite_data(self, task: Task) -> AutoInviteTaskData:
        customer = self.db.get_user(task.customer_id)
        return AutoInviteTaskData(
            task_id=task.id,
            task_title=task.title,
            category=task.subcategory or task.category,
            city=task.city,
            customer_id=task.customer_id,
            customer_name=(customer.full_name if customer and customer.full_name else "") or "A customer",
        )
