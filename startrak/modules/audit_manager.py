"""
Audit Manager Module - StarTrak Attendance System

Change history for attendance records. Audit rows are written by the
attendance store inside the same transaction as the change they describe,
and read back here for the dashboard's audit log viewer.
"""

import json
import logging
from typing import Any, Dict, Optional

ACTION_INSERT = 'INSERT'
ACTION_UPDATE = 'UPDATE'
SYSTEM_ACTOR = 'system'


def record_audit(cursor, table_name: str, record_id: str, action: str,
                 old_values: Optional[Dict[str, Any]], new_values: Optional[Dict[str, Any]],
                 changed_by: Optional[str] = None) -> None:
    """
    Write one audit row using the caller's cursor, so it commits or rolls
    back together with the audited change.
    """
    cursor.execute("""
        INSERT INTO audit_logs (table_name, record_id, action, old_values, new_values, changed_by)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (
        table_name,
        record_id,
        action,
        json.dumps(old_values) if old_values is not None else None,
        json.dumps(new_values) if new_values is not None else None,
        changed_by or SYSTEM_ACTOR
    ))


class AuditManager:
    """Read access to the audit log."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def get_audit_logs(self, page: int = 1, per_page: int = 50,
                       table_name: Optional[str] = None,
                       record_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get a page of audit log entries, newest first.

        Args:
            page (int): 1-based page number
            per_page (int): Entries per page
            table_name (str): Only entries for this table
            record_id (str): Only entries for this record

        Returns:
            Dict[str, Any]: items, total, page, per_page, pages
        """
        page = page if page > 0 else 1
        per_page = per_page if per_page > 0 else 50

        filters = []
        params = []
        if table_name:
            filters.append("table_name = ?")
            params.append(table_name)
        if record_id:
            filters.append("record_id = ?")
            params.append(record_id)
        where = f"WHERE {' AND '.join(filters)}" if filters else ""

        total = self.db.execute_query(
            f"SELECT COUNT(*) AS count FROM audit_logs {where}",
            tuple(params),
            fetch_all=False
        )['count']

        rows = self.db.execute_query(
            f"""SELECT * FROM audit_logs {where}
                ORDER BY changed_at DESC, id DESC
                LIMIT ? OFFSET ?""",
            tuple(params) + (per_page, (page - 1) * per_page)
        )

        for row in rows:
            row['old_values'] = json.loads(row['old_values']) if row['old_values'] else None
            row['new_values'] = json.loads(row['new_values']) if row['new_values'] else None

        return {
            'items': rows,
            'total': total,
            'page': page,
            'per_page': per_page,
            'pages': (total + per_page - 1) // per_page
        }
