from __future__ import annotations

from psycopg import Connection

from ..domain import Notification, NotificationType
from .rows import fetch_all

_COLS = "id, user_id, role, type, title, message, related_booking_id, is_read, created_at"


def _to_notification(row: dict) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        role=row["role"],
        type=NotificationType(row["type"]),
        title=row["title"],
        message=row["message"],
        related_booking_id=row["related_booking_id"],
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
    )


class NotificationRepository:
    def create(self, conn: Connection, *, notification: Notification, dedupe_key: str | None = None) -> bool:
        cur = conn.execute(
            """
            INSERT INTO notification(
              id, user_id, role, type, title, message, related_booking_id, is_read, created_at, dedupe_key
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (dedupe_key) DO NOTHING;
            """,
            (
                notification.id,
                notification.user_id,
                notification.role,
                notification.type.value,
                notification.title,
                notification.message,
                notification.related_booking_id,
                notification.is_read,
                notification.created_at,
                dedupe_key,
            ),
        )
        return cur.rowcount == 1

    def list_for_user(
        self,
        conn: Connection,
        user_id: str,
        *,
        role: str | None = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        where = ["user_id = %s"]
        params: list = [user_id]
        if role:
            where.append("role = %s")
            params.append(role)
        if unread_only:
            where.append("is_read = false")
        params.append(limit)
        cur = conn.execute(
            f"""
            SELECT {_COLS} FROM notification
            WHERE {" AND ".join(where)}
            ORDER BY created_at DESC
            LIMIT %s;
            """,
            params,
        )
        return [_to_notification(r) for r in fetch_all(cur)]

    def mark_read(self, conn: Connection, notification_id: str, *, user_id: str) -> bool:
        cur = conn.execute(
            "UPDATE notification SET is_read = true WHERE id = %s AND user_id = %s;",
            (notification_id, user_id),
        )
        return cur.rowcount == 1

    def mark_all_read(self, conn: Connection, user_id: str, role: str | None = None) -> int:
        if role:
            cur = conn.execute(
                "UPDATE notification SET is_read = true WHERE user_id = %s AND role = %s AND is_read = false;",
                (user_id, role),
            )
        else:
            cur = conn.execute(
                "UPDATE notification SET is_read = true WHERE user_id = %s AND is_read = false;",
                (user_id,),
            )
        return cur.rowcount
