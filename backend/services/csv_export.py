from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ride_ledger.core import Selection

from .export_layout import DEFAULT_LAYOUT_PATH, load_layout
from .ride_parsing import format_iso_timestamp

TOTAL_LABEL = "Total:"


def quote(value: str) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


@dataclass
class CsvExportService:
    """Plain-text CSV of a selection with a trailing totals row.

    Text columns are always quoted; ids, timestamps and amounts never are.
    """

    layout_path: Path = DEFAULT_LAYOUT_PATH

    def __post_init__(self) -> None:
        self.headers: List[str] = list(load_layout(self.layout_path)["csv"]["headers"])

    def build_rows(self, selection: Selection) -> List[List[str]]:
        rows = [
            [
                ride.ride_id,
                format_iso_timestamp(ride.start_time),
                format_iso_timestamp(ride.end_time),
                quote(ride.driver_name),
                quote(ride.vehicle_type),
                quote(ride.status),
                quote(ride.start_location),
                quote(ride.end_location),
                f"{ride.amount:.2f}",
                ride.currency,
            ]
            for ride in selection.rides
        ]
        rows.append(self.total_row(selection))
        return rows

    def total_row(self, selection: Selection) -> List[str]:
        row = [""] * (len(self.headers) - 3)
        row += [TOTAL_LABEL, f"{selection.total_amount:.2f}", selection.currency]
        return row

    def render(self, selection: Selection) -> str:
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(self.headers)
        for row in self.build_rows(selection)[:-1]:
            output.write(",".join(row) + "\n")
        writer.writerow(self.total_row(selection))
        return output.getvalue().rstrip("\n")
