import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from trudify.models import Application, ContactInfo, ProfessionalRecord, Task

logger = logging.getLogger(__name__)

# Base eligibility predicate for every public professional query.
ELIGIBLE_PROFESSIONAL_SQL = (
    "u.professional_title IS NOT NULL AND TRIM(u.professional_title) != '' "
    "AND json_array_length(COALESCE(u.service_categories_json, '[]')) > 0 "
    "AND COALESCE(u.is_banned, 0) != 1"
)

_USER_LIST_COLUMNS = ("service_categories", "service_area_cities", "early_adopter_categories")
_USER_DICT_COLUMNS = ("notification_preferences", "privacy_settings")
_USER_BOOL_COLUMNS = (
    "is_phone_verified",
    "is_email_verified",
    "is_vat_verified",
    "is_early_adopter",
    "is_top_professional",
    "is_featured",
    "is_banned",
)


class MarketplaceError(ValueError):
    """Base class for user-visible marketplace errors."""

    code = "marketplace_error"


class MarketplaceValidationError(MarketplaceError):
    code = "validation_error"


class MarketplaceNotFoundError(MarketplaceError):
    code = "not_found"


class MarketplaceConflictError(MarketplaceError):
    code = "conflict"


class MarketplacePermissionError(MarketplaceError):
    code = "forbidden"


class StoreUnavailableError(MarketplaceError):
    code = "store_unavailable"


class UnexpectedServiceError(MarketplaceError):
    code = "internal_error"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def _load_json(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return default
    return value if isinstance(value, type(default)) else default


def row_to_professional(row: sqlite3.Row) -> ProfessionalRecord:
    data: Dict[str, Any] = dict(row)
    for column in _USER_LIST_COLUMNS:
        data[column] = [str(item) for item in _load_json(data.pop(f"{column}_json", None), [])]
    for column in _USER_DICT_COLUMNS:
        data[column] = _load_json(data.pop(f"{column}_json", None), {})
    for column in _USER_BOOL_COLUMNS:
        data[column] = bool(data.get(column))
    for column in ("tasks_completed", "total_reviews", "top_professional_tasks_count"):
        data[column] = int(data.get(column) or 0)
    return ProfessionalRecord(**data)


def row_to_task(row: sqlite3.Row) -> Task:
    data: Dict[str, Any] = dict(row)
    data["completion_photos"] = _load_json(data.pop("completion_photos_json", None), [])
    data["reviewed_by_customer"] = bool(data.get("reviewed_by_customer"))
    data["applications_count"] = int(data.get("applications_count") or 0)
    return Task(**data)


def row_to_application(row: sqlite3.Row) -> Application:
    data: Dict[str, Any] = dict(row)
    contact = _load_json(data.pop("shared_contact_info_json", None), {})
    data["shared_contact_info"] = ContactInfo(**contact) if contact else None
    return Application(**data)


@dataclass
class MarketplaceDB:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = RLock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """One serialized transaction: commit on success, roll back on any error."""
        with self._lock:
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                logger.exception("Could not open marketplace database at %s", self.db_path)
                raise StoreUnavailableError("Marketplace storage is unavailable") from exc
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.exception("Marketplace database error")
                raise StoreUnavailableError("Marketplace storage is unavailable") from exc
            except BaseException:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    slug TEXT,
                    full_name TEXT,
                    avatar_url TEXT,
                    bio TEXT,
                    professional_title TEXT,
                    company_name TEXT,
                    years_experience INTEGER,
                    hourly_rate_bgn REAL,
                    service_categories_json TEXT NOT NULL DEFAULT '[]',
                    service_area_cities_json TEXT NOT NULL DEFAULT '[]',
                    city TEXT,
                    neighborhood TEXT,
                    email TEXT,
                    phone TEXT,
                    vat_number TEXT,
                    is_phone_verified INTEGER NOT NULL DEFAULT 0,
                    is_email_verified INTEGER NOT NULL DEFAULT 0,
                    is_vat_verified INTEGER NOT NULL DEFAULT 0,
                    tasks_completed INTEGER NOT NULL DEFAULT 0,
                    average_rating REAL,
                    total_reviews INTEGER NOT NULL DEFAULT 0,
                    response_time_hours REAL,
                    is_early_adopter INTEGER NOT NULL DEFAULT 0,
                    early_adopter_categories_json TEXT NOT NULL DEFAULT '[]',
                    is_top_professional INTEGER NOT NULL DEFAULT 0,
                    top_professional_until TEXT,
                    top_professional_tasks_count INTEGER NOT NULL DEFAULT 0,
                    is_featured INTEGER NOT NULL DEFAULT 0,
                    notification_preferences_json TEXT NOT NULL DEFAULT '{}',
                    privacy_settings_json TEXT NOT NULL DEFAULT '{}',
                    preferred_contact TEXT,
                    preferred_language TEXT,
                    telegram_id INTEGER,
                    last_active_at TEXT,
                    is_banned INTEGER NOT NULL DEFAULT 0,
                    ban_reason TEXT,
                    banned_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT NOT NULL,
                    subcategory TEXT,
                    city TEXT NOT NULL,
                    neighborhood TEXT,
                    budget_min_bgn REAL,
                    budget_max_bgn REAL,
                    budget_type TEXT NOT NULL DEFAULT 'fixed',
                    status TEXT NOT NULL DEFAULT 'open',
                    customer_id TEXT NOT NULL,
                    selected_professional_id TEXT,
                    applications_count INTEGER NOT NULL DEFAULT 0,
                    completion_notes TEXT,
                    completion_photos_json TEXT NOT NULL DEFAULT '[]',
                    reviewed_by_customer INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    completed_by_professional_at TEXT,
                    cancelled_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS applications (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    professional_id TEXT NOT NULL,
                    proposed_price_bgn REAL NOT NULL,
                    proposed_timeline TEXT,
                    estimated_duration_hours REAL,
                    availability_date TEXT,
                    message TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    rejection_reason TEXT,
                    withdrawal_reason TEXT,
                    shared_contact_info_json TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    responded_at TEXT,
                    accepted_at TEXT,
                    withdrawn_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reviews (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    reviewer_id TEXT NOT NULL,
                    reviewee_id TEXT NOT NULL,
                    reviewer_type TEXT NOT NULL DEFAULT 'customer',
                    rating INTEGER NOT NULL,
                    quality_rating INTEGER,
                    timeliness_rating INTEGER,
                    communication_rating INTEGER,
                    comment TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    UNIQUE(task_id, reviewer_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    metadata_json TEXT NOT NULL DEFAULT '{}',
                    action_url TEXT,
                    read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_session_tokens (
                    token TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    redirect_url TEXT,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS professional_withdrawals (
                    id TEXT PRIMARY KEY,
                    professional_id TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    application_id TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    description TEXT,
                    timing_impact TEXT NOT NULL,
                    hours_since_acceptance REAL NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_applications_task ON applications(task_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_applications_professional ON applications(professional_id)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_customer ON tasks(customer_id, status)")

    def insert_user(self, **fields: Any) -> ProfessionalRecord:
        now = utc_now_iso()
        record = ProfessionalRecord(
            id=fields.pop("id", None) or new_id("usr"),
            created_at=fields.pop("created_at", None) or now,
            updated_at=fields.pop("updated_at", None) or now,
            **fields,
        )
        data = record.model_dump(exclude={"featured"})
        for column in _USER_LIST_COLUMNS + _USER_DICT_COLUMNS:
            data[f"{column}_json"] = json.dumps(data.pop(column))
        for column in _USER_BOOL_COLUMNS:
            data[column] = 1 if data[column] else 0
        columns = ", ".join(data.keys())
        placeholders = ", ".join("?" for _ in data)
        with self.connect() as conn:
            conn.execute(f"INSERT INTO users ({columns}) VALUES ({placeholders})", tuple(data.values()))
        return record

    def get_user(self, user_id: str) -> Optional[ProfessionalRecord]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return row_to_professional(row) if row else None

    def insert_task(
        self,
        *,
        customer_id: str,
        title: str,
        category: str,
        city: str,
        description: str = "",
        subcategory: Optional[str] = None,
        neighborhood: Optional[str] = None,
        budget_min_bgn: Optional[float] = None,
        budget_max_bgn: Optional[float] = None,
        budget_type: str = "fixed",
        status: str = "open",
        selected_professional_id: Optional[str] = None,
        task_id: Optional[str] = None,
        created_at: Optional[str] = None,
        completed_at: Optional[str] = None,
    ) -> Task:
        now = utc_now_iso()
        task_id = task_id or new_id("tsk")
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks (
                    id, title, description, category, subcategory, city, neighborhood,
                    budget_min_bgn, budget_max_bgn, budget_type, status, customer_id,
                    selected_professional_id, created_at, updated_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    title,
                    description,
                    category,
                    subcategory,
                    city,
                    neighborhood,
                    budget_min_bgn,
                    budget_max_bgn,
                    budget_type,
                    status,
                    customer_id,
                    selected_professional_id,
                    created_at or now,
                    now,
                    completed_at,
                ),
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return row_to_task(row)

    def get_task(self, task_id: str) -> Optional[Task]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return row_to_task(row) if row else None

    def get_application(self, application_id: str) -> Optional[Application]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM applications WHERE id = ?", (application_id,)).fetchone()
        return row_to_application(row) if row else None

    def list_tasks_for_customer(self, customer_id: str, status: Optional[str] = None) -> List[Task]:
        query = "SELECT * FROM tasks WHERE customer_id = ?"
        args: List[Any] = [customer_id]
        if status:
            query += " AND status = ?"
            args.append(status)
        query += " ORDER BY created_at DESC"
        with self.connect() as conn:
            rows = conn.execute(query, tuple(args)).fetchall()
        return [row_to_task(row) for row in rows]
