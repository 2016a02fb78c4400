"""
QR Code Generator Module - StarTrak Attendance System

Renders student and parent QR payloads as PNG images for printing and for
display in the dashboard. Payload formats live in qr_resolver; this module
only draws them.
"""

import base64
import io
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import qrcode

from startrak.modules.models import Parent, Student
from startrak.modules.qr_resolver import build_student_code

ERROR_CORRECTION_LEVELS = {
    'L': qrcode.constants.ERROR_CORRECT_L,  # ~7% error correction
    'M': qrcode.constants.ERROR_CORRECT_M,  # ~15% error correction
    'Q': qrcode.constants.ERROR_CORRECT_Q,  # ~25% error correction
    'H': qrcode.constants.ERROR_CORRECT_H   # ~30% error correction
}


class QRGenerator:
    """
    QR code image rendering for student and parent codes.
    """

    def __init__(self, box_size: int = 10, border: int = 4, error_correction: str = 'M'):
        """
        Initialize the QR code generator.

        Args:
            box_size (int): Size of each box in pixels
            border (int): Border width in boxes (minimum is 4)
            error_correction (str): One of L, M, Q, H
        """
        self.logger = logging.getLogger(__name__)
        self.settings = {
            'version': 1,
            'error_correction': ERROR_CORRECTION_LEVELS.get(error_correction, qrcode.constants.ERROR_CORRECT_M),
            'box_size': box_size,
            'border': border,
            'fill_color': 'black',
            'back_color': 'white'
        }

    def generate_qr_image(self, payload: str, filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Render a payload as a PNG QR code.

        Args:
            payload (str): Data to encode
            filename (str): Suggested download filename

        Returns:
            Dict[str, Any]: payload, base64 PNG, image size and filename
        """
        qr = qrcode.QRCode(
            version=self.settings['version'],
            error_correction=self.settings['error_correction'],
            box_size=self.settings['box_size'],
            border=self.settings['border']
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=self.settings['fill_color'],
            back_color=self.settings['back_color']
        )

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')

        return {
            'qr_data': payload,
            'image_base64': base64.b64encode(buffer.getvalue()).decode(),
            'image_size': img.size,
            'filename': filename or f"{payload}.png",
            'generated_at': datetime.now().isoformat()
        }

    def generate_student_qr_code(self, student: Student, timestamp_ms: Optional[int] = None) -> Dict[str, Any]:
        """Issue a fresh student check-in code and render it."""
        payload = build_student_code(student.id, timestamp_ms)
        result = self.generate_qr_image(payload, filename=f"qr_{student.student_code}.png")
        result['student_id'] = student.student_code
        self.logger.info(f"QR code generated for student {student.student_code}")
        return result

    def generate_parent_qr_code(self, parent: Parent) -> Dict[str, Any]:
        """Render a parent's current checkout code."""
        result = self.generate_qr_image(parent.qr_code, filename=f"{parent.qr_code}.png")
        result['parent_id'] = parent.id
        return result
