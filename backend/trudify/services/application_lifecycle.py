import json
import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from trudify.models import Application, ContactInfo, Task
from trudify.services.marketplace_db import (
    MarketplaceConflictError,
    MarketplaceDB,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
    new_id,
    parse_iso,
    row_to_application,
    row_to_task,
    utc_now,
)
from trudify.services.message_policy import enforce_message_policy

logger = logging.getLogger(__name__)

WITHDRAWAL_WINDOW_DAYS = 30
LOW_IMPACT_HOURS = 2
MEDIUM_IMPACT_HOURS = 24


class TaskNotOpenError(MarketplaceConflictError):
    code = "task_not_open"


class DuplicateApplicationError(MarketplaceConflictError):
    code = "duplicate_application"


class InvalidApplicationStatusError(MarketplaceConflictError):
    code = "invalid_application_status"


class InvalidTaskStatusError(MarketplaceConflictError):
    code = "invalid_task_status"


class TaskAlreadyCompletedError(MarketplaceConflictError):
    code = "task_already_completed"


class WithdrawalQuotaExceededError(MarketplaceConflictError):
    code = "withdrawal_quota_exceeded"


@dataclass
class WithdrawalOutcome:
    application: Application
    task: Task
    timing_impact: Optional[str] = None


def timing_impact(hours_since_acceptance: float) -> str:
    if hours_since_acceptance < LOW_IMPACT_HOURS:
        return "low"
    if hours_since_acceptance < MEDIUM_IMPACT_HOURS:
        return "medium"
    return "high"


class ApplicationLifecycle:
    """State transitions for applications and the tasks they are attached to.

    Each transition runs in one store transaction. Accepting writes the
    application first and then moves the task conditionally on it still being
    open, so two concurrent accepts on the same task cannot both win.
    """

    def __init__(
        self,
        db: MarketplaceDB,
        *,
        withdrawal_monthly_limit: int = 2,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.withdrawal_monthly_limit = withdrawal_monthly_limit
        self.clock = clock

    def _now(self) -> str:
        return self.clock().isoformat()

    def _load_task(self, conn: sqlite3.Connection, task_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise MarketplaceNotFoundError("Task not found")
        return row

    def _load_application(self, conn: sqlite3.Connection, application_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM applications WHERE id = ?", (application_id,)).fetchone()
        if row is None:
            raise MarketplaceNotFoundError("Application not found")
        return row

    def _reload(self, conn: sqlite3.Connection, application_id: str, task_id: str) -> Tuple[Application, Task]:
        application = row_to_application(self._load_application(conn, application_id))
        task = row_to_task(self._load_task(conn, task_id))
        return application, task

    def submit(
        self,
        *,
        task_id: str,
        professional_id: str,
        proposed_price: float,
        timeline: Optional[str] = None,
        message: Optional[str] = None,
        estimated_duration_hours: Optional[float] = None,
        availability_date: Optional[str] = None,
    ) -> Application:
        if not math.isfinite(proposed_price) or proposed_price < 0:
            raise MarketplaceValidationError("Proposed price must be zero or greater")
        message = message.strip() if message else None
        enforce_message_policy(message)
        if not timeline and estimated_duration_hours:
            timeline = f"{estimated_duration_hours:g}h"

        now = self._now()
        application_id = new_id("app")
        with self.db.connect() as conn:
            task = self._load_task(conn, task_id)
            if task["customer_id"] == professional_id:
                raise MarketplacePermissionError("You cannot apply to your own task")
            if task["status"] != "open":
                raise TaskNotOpenError("Task is no longer accepting applications")
            existing = conn.execute(
                """
                SELECT id FROM applications
                WHERE task_id = ? AND professional_id = ? AND status != 'withdrawn'
                """,
                (task_id, professional_id),
            ).fetchone()
            if existing is not None:
                raise DuplicateApplicationError("You have already applied to this task")

            conn.execute(
                """
                INSERT INTO applications (
                    id, task_id, professional_id, proposed_price_bgn, proposed_timeline,
                    estimated_duration_hours, availability_date, message, status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    application_id,
                    task_id,
                    professional_id,
                    proposed_price,
                    timeline,
                    estimated_duration_hours,
                    availability_date,
                    message,
                    now,
                    now,
                ),
            )
            conn.execute(
                "UPDATE tasks SET applications_count = applications_count + 1, updated_at = ? WHERE id = ?",
                (now, task_id),
            )
            row = self._load_application(conn, application_id)
        logger.info("Application %s submitted for task %s", application_id, task_id)
        return row_to_application(row)

    def accept(
        self,
        application_id: str,
        actor_id: str,
        contact_info: Optional[ContactInfo] = None,
    ) -> Tuple[Application, Task]:
        now = self._now()
        contact_json = json.dumps(contact_info.model_dump()) if contact_info else None
        with self.db.connect() as conn:
            application = self._load_application(conn, application_id)
            task = self._load_task(conn, application["task_id"])
            if task["customer_id"] != actor_id:
                raise MarketplacePermissionError("Only the task owner can accept applications")
            if application["status"] != "pending":
                raise InvalidApplicationStatusError(f"Cannot accept an application that is {application['status']}")
            if task["status"] != "open":
                raise TaskNotOpenError("Task is no longer open")

            updated = conn.execute(
                """
                UPDATE applications
                SET status = 'accepted', responded_at = ?, accepted_at = ?, updated_at = ?, shared_contact_info_json = ?
                WHERE id = ? AND status = 'pending'
                """,
                (now, now, now, contact_json, application_id),
            )
            if updated.rowcount == 0:
                raise InvalidApplicationStatusError("Application is no longer pending")
            # Conditional on the task still being open; losing the race rolls back the application write too.
            moved = conn.execute(
                """
                UPDATE tasks
                SET status = 'in_progress', selected_professional_id = ?, updated_at = ?
                WHERE id = ? AND status = 'open'
                """,
                (application["professional_id"], now, task["id"]),
            )
            if moved.rowcount == 0:
                raise TaskNotOpenError("Task is no longer open")
            result = self._reload(conn, application_id, task["id"])
        logger.info("Application %s accepted for task %s", application_id, task["id"])
        return result

    def reject(self, application_id: str, actor_id: str, reason: Optional[str] = None) -> Tuple[Application, Task]:
        now = self._now()
        with self.db.connect() as conn:
            application = self._load_application(conn, application_id)
            task = self._load_task(conn, application["task_id"])
            if task["customer_id"] != actor_id:
                raise MarketplacePermissionError("Only the task owner can reject applications")
            if application["status"] != "pending":
                raise InvalidApplicationStatusError(f"Cannot reject an application that is {application['status']}")
            conn.execute(
                """
                UPDATE applications
                SET status = 'rejected', rejection_reason = ?, responded_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (reason, now, now, application_id),
            )
            return self._reload(conn, application_id, task["id"])

    def withdraw(
        self,
        application_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        description: Optional[str] = None,
    ) -> WithdrawalOutcome:
        with self.db.connect() as conn:
            application = self._load_application(conn, application_id)
            if application["professional_id"] != actor_id:
                raise MarketplacePermissionError("You can only withdraw your own applications")
            task = self._load_task(conn, application["task_id"])

            if application["status"] == "pending":
                now = self._now()
                conn.execute(
                    """
                    UPDATE applications
                    SET status = 'withdrawn', withdrawal_reason = ?, withdrawn_at = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (reason, now, now, application_id),
                )
                conn.execute(
                    """
                    UPDATE tasks SET applications_count = MAX(applications_count - 1, 0), updated_at = ?
                    WHERE id = ?
                    """,
                    (now, task["id"]),
                )
                application_model, task_model = self._reload(conn, application_id, task["id"])
                return WithdrawalOutcome(application=application_model, task=task_model)

            if application["status"] == "accepted":
                return self._withdraw_accepted(conn, application, task, reason or "other", description)

            raise InvalidApplicationStatusError(f"Cannot withdraw an application that is {application['status']}")

    def withdraw_from_task(
        self,
        task_id: str,
        actor_id: str,
        reason: str,
        description: Optional[str] = None,
    ) -> WithdrawalOutcome:
        if not reason or not reason.strip():
            raise MarketplaceValidationError("Withdrawal reason is required")
        with self.db.connect() as conn:
            task = self._load_task(conn, task_id)
            if task["selected_professional_id"] != actor_id:
                raise MarketplacePermissionError("You are not assigned to this task")
            application = conn.execute(
                """
                SELECT * FROM applications
                WHERE task_id = ? AND professional_id = ?
                ORDER BY CASE status WHEN 'accepted' THEN 0 ELSE 1 END, created_at DESC
                LIMIT 1
                """,
                (task_id, actor_id),
            ).fetchone()
            if application is None:
                raise MarketplaceNotFoundError("Application not found")
            if application["status"] != "accepted":
                raise InvalidApplicationStatusError("Only accepted applications can be withdrawn from a task")
            return self._withdraw_accepted(conn, application, task, reason.strip(), description)

    def _withdraw_accepted(
        self,
        conn: sqlite3.Connection,
        application: sqlite3.Row,
        task: sqlite3.Row,
        reason: str,
        description: Optional[str],
    ) -> WithdrawalOutcome:
        if task["status"] != "in_progress" or task["selected_professional_id"] != application["professional_id"]:
            raise InvalidTaskStatusError("Can only withdraw from tasks that are in progress")

        now_dt = self.clock()
        now = now_dt.isoformat()
        accepted_at = parse_iso(application["accepted_at"]) or parse_iso(application["updated_at"]) or now_dt
        hours = max((now_dt - accepted_at).total_seconds() / 3600, 0.0)
        impact = timing_impact(hours)

        if impact != "low":
            window_start = (now_dt - timedelta(days=WITHDRAWAL_WINDOW_DAYS)).isoformat()
            used = conn.execute(
                """
                SELECT COUNT(*) FROM professional_withdrawals
                WHERE professional_id = ? AND timing_impact != 'low' AND created_at >= ?
                """,
                (application["professional_id"], window_start),
            ).fetchone()[0]
            if used >= self.withdrawal_monthly_limit:
                raise WithdrawalQuotaExceededError(
                    f"Withdrawal limit reached ({self.withdrawal_monthly_limit} per {WITHDRAWAL_WINDOW_DAYS} days)"
                )

        conn.execute(
            """
            UPDATE applications
            SET status = 'withdrawn', withdrawal_reason = ?, withdrawn_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (reason, now, now, application["id"]),
        )
        conn.execute(
            """
            UPDATE tasks SET status = 'open', selected_professional_id = NULL, updated_at = ?
            WHERE id = ?
            """,
            (now, task["id"]),
        )
        conn.execute(
            """
            INSERT INTO professional_withdrawals (
                id, professional_id, task_id, application_id, reason, description,
                timing_impact, hours_since_acceptance, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id("wdr"),
                application["professional_id"],
                task["id"],
                application["id"],
                reason,
                description,
                impact,
                round(hours, 2),
                now,
            ),
        )
        application_model, task_model = self._reload(conn, application["id"], task["id"])
        logger.info(
            "Professional %s withdrew from task %s (%s impact)", application["professional_id"], task["id"], impact
        )
        return WithdrawalOutcome(application=application_model, task=task_model, timing_impact=impact)

    def mark_complete(
        self,
        task_id: str,
        actor_id: str,
        completion_notes: Optional[str] = None,
        completion_photos: Optional[List[str]] = None,
    ) -> Tuple[Task, bool]:
        """Complete an in-progress task. Returns the task and whether the professional marked it."""
        now = self._now()
        with self.db.connect() as conn:
            task = self._load_task(conn, task_id)
            is_customer = task["customer_id"] == actor_id
            is_professional = task["selected_professional_id"] == actor_id
            if not is_customer and not is_professional:
                raise MarketplacePermissionError("Only the customer or the assigned professional can complete this task")
            if task["status"] == "completed":
                raise TaskAlreadyCompletedError("Task is already completed")
            if task["status"] != "in_progress":
                raise InvalidTaskStatusError(f"Cannot complete a task that is {task['status']}")

            updated = conn.execute(
                """
                UPDATE tasks
                SET status = 'completed', completed_at = ?, updated_at = ?, completion_notes = ?,
                    completion_photos_json = ?, completed_by_professional_at = ?
                WHERE id = ? AND status = 'in_progress'
                """,
                (
                    now,
                    now,
                    completion_notes,
                    json.dumps(completion_photos or []),
                    now if is_professional and not is_customer else None,
                    task_id,
                ),
            )
            if updated.rowcount == 0:
                raise InvalidTaskStatusError("Task is no longer in progress")
            row = self._load_task(conn, task_id)
        logger.info("Task %s completed by %s", task_id, "professional" if is_professional else "customer")
        return row_to_task(row), is_professional and not is_customer

    def list_for_professional(self, professional_id: str, status: Optional[str] = None) -> List[Application]:
        query = "SELECT * FROM applications WHERE professional_id = ?"
        args: List[str] = [professional_id]
        if status:
            query += " AND status = ?"
            args.append(status)
        query += " ORDER BY created_at DESC"
        with self.db.connect() as conn:
            rows = conn.execute(query, tuple(args)).fetchall()
        return [row_to_application(row) for row in rows]

    def list_for_task(self, task_id: str, actor_id: str) -> List[Application]:
        with self.db.connect() as conn:
            task = self._load_task(conn, task_id)
            if task["customer_id"] != actor_id:
                raise MarketplacePermissionError("Only the task owner can view its applications")
            rows = conn.execute(
                "SELECT * FROM applications WHERE task_id = ? ORDER BY created_at DESC",
                (task_id,),
            ).fetchall()
        return [row_to_application(row) for row in rows]
