"""
Build the callback analytics PDF report.
"""
import io
from datetime import datetime
from typing import Dict, Any, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.pdfgen import canvas


FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
MARGIN = 50


def _fmt_hours(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}h"


class _Writer:
    """Keeps a cursor on the page and starts a new one when it runs out."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def ensure(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def title(self, text: str) -> None:
        self.ensure(30)
        self.c.setFont(FONT_BOLD, 18)
        self.c.setFillColor(colors.HexColor("#1f2937"))
        self.c.drawString(MARGIN, self.y, text)
        self.y -= 26

    def section(self, text: str) -> None:
        self.ensure(40)
        self.y -= 8
        self.c.setFont(FONT_BOLD, 13)
        self.c.setFillColor(colors.HexColor("#1d4ed8"))
        self.c.drawString(MARGIN, self.y, text)
        self.c.setStrokeColor(colors.HexColor("#d1d5db"))
        self.c.line(MARGIN, self.y - 4, self.width - MARGIN, self.y - 4)
        self.y -= 20

    def line(self, text: str, size: int = 10) -> None:
        self.ensure(16)
        self.c.setFont(FONT, size)
        self.c.setFillColor(colors.black)
        self.c.drawString(MARGIN, self.y, text)
        self.y -= 14

    def row(self, cells: List[str], widths: List[float], bold: bool = False) -> None:
        self.ensure(16)
        self.c.setFont(FONT_BOLD if bold else FONT, 9)
        self.c.setFillColor(colors.black)
        x = MARGIN
        for cell, width in zip(cells, widths):
            self.c.drawString(x, self.y, cell)
            x += width
        self.y -= 14


def build_callback_report_pdf(data: Dict[str, Any], *, generated_at: datetime, business_name: str) -> bytes:
    """Render the output of analytics.summarize_callbacks as a PDF."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle("Customer Callback Analytics Report")
    w = _Writer(c)

    w.title("Customer Callback Analytics Report")
    w.line(business_name)
    date_range = data.get("date_range") or {}
    period = f"{date_range.get('from') or 'All time'} to {date_range.get('to') or 'now'}"
    w.line(f"Period: {period}")
    w.line(f"Generated: {generated_at.strftime('%d/%m/%Y %H:%M')} UTC")

    summary = data["summary"]
    w.section("Summary")
    w.line(f"Total callbacks: {summary['total']}")
    w.line(f"Completed: {summary['completed']}    Pending: {summary['pending']}")
    w.line(f"Completion rate: {summary['completion_rate']:.1f}%")
    w.line(
        f"Average completion time: {_fmt_hours(summary['avg_completion_time_hours'])}    "
        f"Longest: {_fmt_hours(summary['longest_completion_time_hours'])}"
    )

    w.section("Staff Performance")
    widths = [140, 50, 65, 55, 70, 70, 60]
    w.row(["Staff Member", "Total", "Completed", "Pending", "Rate", "Avg time", "Longest"], widths, bold=True)
    if not data["staff_performance"]:
        w.line("No assigned callbacks in this period.", size=9)
    for staff in data["staff_performance"]:
        w.row([
            str(staff["staff_name"])[:28],
            str(staff["total"]),
            str(staff["completed"]),
            str(staff["pending"]),
            f"{staff['completion_rate']:.1f}%",
            _fmt_hours(staff["avg_completion_time_hours"]),
            _fmt_hours(staff["longest_completion_time_hours"]),
        ], widths)

    w.section("Status Breakdown")
    for key, value in data["status_breakdown"].items():
        w.line(f"{key.title()}: {value}")

    w.section("Priority Distribution")
    for key, value in data["priority_breakdown"].items():
        w.line(f"{key.title()}: {value}")

    w.section("Daily Trend (last 30 days)")
    w.row(["Date", "Created", "Completed"], [100, 70, 70], bold=True)
    for day in data["daily_trends"]:
        if day["created"] or day["completed"]:
            w.row([day["date"], str(day["created"]), str(day["completed"])], [100, 70, 70])

    c.showPage()
    c.save()
    return buf.getvalue()
