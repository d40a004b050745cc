from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.worksheet.worksheet import Worksheet

from ride_ledger.core import Selection

from .export_layout import DEFAULT_LAYOUT_PATH, load_layout
from .ride_parsing import format_iso_timestamp

TOTAL_LABEL = "Total:"


@dataclass
class ExcelExportService:
    """Export selected rides into a single-sheet workbook."""

    layout_path: Path = DEFAULT_LAYOUT_PATH

    def __post_init__(self) -> None:
        layout = load_layout(self.layout_path)
        self.headers = list(layout["csv"]["headers"])
        self.sheet_name = str(layout["xlsx"].get("sheet_name") or "Rides")

    def generate_export(self, selection: Selection) -> bytes:
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name

        worksheet.append(self.headers)
        for cell in worksheet[1]:
            cell.font = Font(bold=True)

        self._map_rides(worksheet, selection)
        self._map_totals(worksheet, selection)

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    def _map_rides(self, sheet: Worksheet, selection: Selection) -> None:
        for ride in selection.rides:
            sheet.append(
                [
                    ride.ride_id,
                    format_iso_timestamp(ride.start_time),
                    format_iso_timestamp(ride.end_time),
                    ride.driver_name,
                    ride.vehicle_type,
                    ride.status,
                    ride.start_location,
                    ride.end_location,
                    round(ride.amount, 2),
                    ride.currency,
                ]
            )
            sheet.cell(row=sheet.max_row, column=len(self.headers) - 1).number_format = "0.00"

    def _map_totals(self, sheet: Worksheet, selection: Selection) -> None:
        row = [None] * (len(self.headers) - 3)
        row += [TOTAL_LABEL, round(selection.total_amount, 2), selection.currency]
        sheet.append(row)
        for cell in sheet[sheet.max_row]:
            cell.font = Font(bold=True)
        sheet.cell(row=sheet.max_row, column=len(self.headers) - 1).number_format = "0.00"


def read_cells(source: Union[bytes, Path, str], cells: list[str], sheet_name: str) -> dict[str, Any]:
    """Utility for validation/testing: read exact cell values from an exported workbook."""
    workbook = load_workbook(io.BytesIO(source) if isinstance(source, bytes) else source, data_only=False)
    sheet = workbook[sheet_name]
    return {cell: sheet[cell].value for cell in cells}
