from io import BytesIO
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

MARGIN = 50
LINE_HEIGHT = 16
BODY_FONT = "Helvetica"
HEADING_FONT = "Helvetica-Bold"


class _Writer:
    """Top-down text cursor over a reportlab canvas with automatic page breaks."""

    def __init__(self, buffer: BytesIO):
        self.canvas = canvas.Canvas(buffer, pagesize=A4)
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def _ensure_room(self, lines: int = 1):
        if self.y - lines * LINE_HEIGHT < MARGIN:
            self.canvas.showPage()
            self.y = self.height - MARGIN

    def title(self, text: str):
        self.canvas.setFont(HEADING_FONT, 20)
        self.canvas.drawCentredString(self.width / 2, self.y, text)
        self.y -= LINE_HEIGHT * 2

    def heading(self, text: str):
        self.y -= LINE_HEIGHT / 2
        self._ensure_room(2)
        self.canvas.setFont(HEADING_FONT, 14)
        self.canvas.drawString(MARGIN, self.y, text)
        self.y -= LINE_HEIGHT

    def text(self, text: str):
        self.canvas.setFont(BODY_FONT, 12)
        for line in simpleSplit(text or "", BODY_FONT, 12, self.width - 2 * MARGIN) or [""]:
            self._ensure_room()
            self.canvas.drawString(MARGIN, self.y, line)
            self.y -= LINE_HEIGHT

    def finish(self):
        self.canvas.showPage()
        self.canvas.save()


def render_log_pdf(log: dict, team_leader_name: Optional[str] = None) -> bytes:
    buffer = BytesIO()
    w = _Writer(buffer)

    w.title("Daily Work Log")
    w.text(f"Date: {log['date'].strftime('%d/%m/%Y')}")
    w.text(f"Project: {log['project']}")
    w.text(f"Team Leader: {team_leader_name or '-'}")
    w.text(f"Work Hours: {log['start_time'].strftime('%H:%M')} - {log['end_time'].strftime('%H:%M')}")
    w.text(f"Status: {log['status']}")

    w.heading("Employees Present:")
    employees = log.get("employees") or []
    if not employees:
        w.text("No employees recorded.")
    for name in employees:
        w.text(f"- {name}")

    w.heading("Work Description:")
    w.text(log.get("work_description", ""))

    w.finish()
    return buffer.getvalue()
