"""
Report Generator Module - StarTrak Attendance System

Exports a session's attendance sheet for staff: one row per student with
status and the three lifecycle timestamps, plus a status summary sheet in
the Excel variant. Exports are built in memory and returned as bytes.
"""

import io
import logging
from datetime import datetime
from typing import Any, Dict

import pandas as pd

from startrak.modules.attendance_manager import AttendanceManager
from startrak.modules.models import AttendanceStatus

EXPORT_COLUMNS = {
    'student_code': 'Student ID',
    'student_name': 'Student Name',
    'status': 'Status',
    'check_in_time': 'Check-In Time',
    'learning_start_time': 'Learning Start Time',
    'check_out_time': 'Check-Out Time',
    'notes': 'Notes'
}

MIMETYPES = {
    'csv': 'text/csv',
    'excel': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
}


class ReportGenerator:
    """
    Session attendance exports in CSV and Excel formats.
    """

    def __init__(self, store):
        """
        Args:
            store: Attendance store instance
        """
        self.store = store
        self.logger = logging.getLogger(__name__)
        self.supported_formats = list(MIMETYPES)

    @staticmethod
    def attendance_frame(rows) -> pd.DataFrame:
        """Build an attendance sheet DataFrame from session attendance rows."""
        df = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
        return df.rename(columns=EXPORT_COLUMNS)

    def export_session_attendance(self, session_id: str, output_format: str = 'csv') -> Dict[str, Any]:
        """
        Export a session's attendance sheet.

        Args:
            session_id (str): Session id
            output_format (str): csv or excel

        Returns:
            Dict[str, Any]: success flag, and filename/content/mimetype or error
        """
        if output_format not in self.supported_formats:
            return {
                'success': False,
                'error': f'Unsupported output format: {output_format}'
            }

        session = self.store.get_session(session_id)
        if session is None:
            return {
                'success': False,
                'error': 'Session not found'
            }

        rows = self.store.list_session_attendance(session_id)
        df = self.attendance_frame(rows)
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        if output_format == 'excel':
            stats = AttendanceManager.summarize(AttendanceStatus(row['status']) for row in rows).to_dict()
            df_stats = pd.DataFrame(
                [{'Metric': key.replace('_', ' ').title(), 'Value': value} for key, value in stats.items()]
            )
            buffer = io.BytesIO()
            with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name='Attendance', index=False)
                df_stats.to_excel(writer, sheet_name='Summary', index=False)
            content = buffer.getvalue()
            filename = f"attendance_{session_id[:8]}_{stamp}.xlsx"
        else:
            content = df.to_csv(index=False).encode('utf-8')
            filename = f"attendance_{session_id[:8]}_{stamp}.csv"

        self.logger.info(f"Exported {len(df)} attendance row(s) for session {session.name} as {output_format}")
        return {
            'success': True,
            'filename': filename,
            'content': content,
            'mimetype': MIMETYPES[output_format],
            'rows': len(df)
        }

