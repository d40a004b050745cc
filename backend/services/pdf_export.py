"""Tabulated ride summary PDF.

Renders a landscape table of the selected rides with a grand total row and a
page number on every page. The output is used on its own (summary export)
and as the cover of the merged report.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.flowables import HRFlowable

from ride_ledger.core import Selection, format_money

from .export_layout import DEFAULT_LAYOUT_PATH, font_path_from, load_layout
from .ride_parsing import format_display_timestamp, sanitize_text

logger = logging.getLogger(__name__)

FALLBACK_FONT = "Helvetica"
GRAND_TOTAL_LABEL = "Grand Total:"


@lru_cache(maxsize=None)
def register_pdf_font(font_path: str, font_name: str) -> str:
    """Register the TTF once per process and return the usable font name."""
    if not font_path or not Path(font_path).is_file():
        logger.warning("PDF font %r not found, using %s", font_path, FALLBACK_FONT)
        return FALLBACK_FONT
    try:
        pdfmetrics.registerFont(TTFont(font_name, font_path))
    except (TTFError, OSError) as exc:
        logger.warning("Could not load PDF font %s (%s), using %s", font_path, exc, FALLBACK_FONT)
        return FALLBACK_FONT
    return font_name


@dataclass
class CoverOptions:
    account_name: Optional[str] = None
    generated_on: Optional[date] = None


def format_long_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


@dataclass
class SummaryPdfRenderer:
    layout_path: Path = DEFAULT_LAYOUT_PATH

    def __post_init__(self) -> None:
        self.layout: Dict[str, Any] = load_layout(self.layout_path)["pdf"]
        font = self.layout.get("font", {})
        self.font_name = register_pdf_font(font_path_from(self.layout), str(font.get("name") or "RideSans"))

    @property
    def columns(self) -> List[Dict[str, Any]]:
        return self.layout["columns"]

    def build_rows(self, selection: Selection) -> List[List[str]]:
        rows: List[List[str]] = []
        for index, ride in enumerate(selection.rides, start=1):
            rows.append(
                [
                    str(index),
                    format_display_timestamp(ride.start_time),
                    format_display_timestamp(ride.end_time, "N/A"),
                    sanitize_text(ride.driver_name or "N/A"),
                    sanitize_text(ride.vehicle_type or "N/A"),
                    sanitize_text(ride.start_location or "N/A"),
                    sanitize_text(ride.end_location or "N/A"),
                    format_money(ride.amount, ride.currency),
                ]
            )
        total_row = [""] * (len(self.columns) - 2)
        total_row += [GRAND_TOTAL_LABEL, format_money(selection.total_amount, selection.currency)]
        rows.append(total_row)
        return rows

    def _styles(self) -> Dict[str, ParagraphStyle]:
        body_size = self.layout.get("body_font_size", 8)
        return {
            "title": ParagraphStyle("RideTitle", fontName=self.font_name, fontSize=24, leading=28),
            "meta_left": ParagraphStyle(
                "RideMetaLeft", fontName=self.font_name, fontSize=10, textColor=colors.grey, alignment=TA_LEFT
            ),
            "meta_right": ParagraphStyle(
                "RideMetaRight", fontName=self.font_name, fontSize=10, textColor=colors.grey, alignment=TA_RIGHT
            ),
            "cell": ParagraphStyle("RideCell", fontName=self.font_name, fontSize=body_size, leading=body_size + 2),
            "cell_center": ParagraphStyle(
                "RideCellCenter",
                fontName=self.font_name,
                fontSize=body_size,
                leading=body_size + 2,
                alignment=TA_CENTER,
            ),
            "note": ParagraphStyle("RideNote", fontName=self.font_name, fontSize=8, textColor=colors.grey),
        }

    def _table(self, rows: Sequence[Sequence[str]], styles: Dict[str, ParagraphStyle]) -> Table:
        columns = self.columns
        header = [column["header"] for column in columns]
        body = []
        for row in rows:
            body.append(
                [
                    Paragraph(
                        escape(value),
                        styles["cell_center"] if columns[i].get("align") == "CENTER" else styles["cell"],
                    )
                    for i, value in enumerate(row)
                ]
            )

        table = Table(
            [header] + body,
            colWidths=[float(column["width"]) * mm for column in columns],
            repeatRows=1,
        )
        commands = [
            ("FONTNAME", (0, 0), (-1, -1), self.font_name),
            ("FONTSIZE", (0, 0), (-1, 0), self.layout.get("header_font_size", 9)),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(self.layout.get("header_fill", "#000000"))),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor(self.layout.get("header_text", "#FFFFFF"))),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BACKGROUND", (0, -1), (-1, -1), colors.HexColor(self.layout.get("total_fill", "#F0F0F0"))),
        ]
        if len(body) > 1:
            commands.append(
                (
                    "ROWBACKGROUNDS",
                    (0, 1),
                    (-1, -2),
                    [colors.white, colors.HexColor(self.layout.get("stripe_fill", "#F5F5F5"))],
                )
            )
        for i, column in enumerate(columns):
            if column.get("align") == "CENTER":
                commands.append(("ALIGN", (i, 0), (i, 0), "CENTER"))
        table.setStyle(TableStyle(commands))
        return table

    def _draw_footer(self, canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont(self.font_name, 8)
        canvas.setFillGray(0.6)
        page_width, _ = doc.pagesize
        canvas.drawCentredString(page_width / 2, 10 * mm, f"Page {doc.page}")
        canvas.restoreState()

    def render(
        self,
        selection: Selection,
        cover: Optional[CoverOptions] = None,
        missing_ride_ids: Sequence[str] = (),
    ) -> bytes:
        cover = cover or CoverOptions()
        generated_on = cover.generated_on or datetime.now(timezone.utc).date()
        margins = self.layout.get("margins_mm", {})
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            leftMargin=float(margins.get("left", 13)) * mm,
            rightMargin=float(margins.get("right", 13)) * mm,
            topMargin=float(margins.get("top", 14)) * mm,
            bottomMargin=float(margins.get("bottom", 18)) * mm,
            title=self.layout.get("title", "Ride Expense Summary"),
        )
        styles = self._styles()

        account = f"Account: {escape(sanitize_text(cover.account_name))}" if cover.account_name else ""
        meta = Table(
            [[
                Paragraph(account, styles["meta_left"]),
                Paragraph(f"Generated: {format_long_date(generated_on)}", styles["meta_right"]),
            ]],
            colWidths=[doc.width / 2, doc.width / 2],
        )
        meta.setStyle(TableStyle([("LEFTPADDING", (0, 0), (-1, -1), 0), ("RIGHTPADDING", (0, 0), (-1, -1), 0)]))

        story = [
            Paragraph(escape(self.layout.get("title", "Ride Expense Summary")), styles["title"]),
            Spacer(1, 4 * mm),
            meta,
            HRFlowable(width="100%", thickness=0.5, color=colors.black, spaceBefore=2 * mm, spaceAfter=5 * mm),
            self._table(self.build_rows(selection), styles),
        ]
        if missing_ride_ids:
            story.append(Spacer(1, 4 * mm))
            story.append(
                Paragraph(
                    "Billing documents unavailable for: " + escape(", ".join(missing_ride_ids)),
                    styles["note"],
                )
            )

        doc.build(story, onFirstPage=self._draw_footer, onLaterPages=self._draw_footer)
        logger.info("Rendered summary PDF for %d rides", selection.selected_count)
        return buffer.getvalue()
