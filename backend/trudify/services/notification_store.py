import json
from typing import Any, Dict, List, Optional, Set

from trudify.models import NotificationRecord
from trudify.services.marketplace_db import MarketplaceDB, new_id, utc_now_iso


def _row_to_notification(row) -> NotificationRecord:
    data = dict(row)
    try:
        metadata = json.loads(data.pop("metadata_json") or "{}")
    except json.JSONDecodeError:
        metadata = {}
    data["metadata"] = metadata if isinstance(metadata, dict) else {}
    data["read"] = bool(data.get("read"))
    return NotificationRecord(**data)


class NotificationStore:
    def __init__(self, db: MarketplaceDB) -> None:
        self.db = db

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=new_id("ntf"),
            user_id=user_id,
            type=notification_type,  # type: ignore[arg-type]
            title=title,
            message=message,
            metadata=metadata or {},
            action_url=action_url,
            read=False,
            created_at=utc_now_iso(),
        )
        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT INTO notifications (id, user_id, type, title, message, metadata_json, action_url, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.type,
                    record.title,
                    record.message,
                    json.dumps(record.metadata),
                    record.action_url,
                    record.created_at,
                ),
            )
        return record

    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[NotificationRecord]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY created_at DESC, rowid DESC LIMIT 100"
        with self.db.connect() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
        return [_row_to_notification(row) for row in rows]

    def mark_read(self, user_id: str, notification_id: str) -> Optional[NotificationRecord]:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        return _row_to_notification(row)

    def invited_user_ids(self, task_id: str) -> Set[str]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT user_id FROM notifications
                WHERE type = 'task_invitation' AND json_extract(metadata_json, '$.taskId') = ?
                """,
                (task_id,),
            ).fetchall()
        return {str(row["user_id"]) for row in rows}

    def has_invitation(self, user_id: str, task_id: str) -> bool:
        return user_id in self.invited_user_ids(task_id)
