import csv
import io
from datetime import date
from pathlib import Path

from pypdf import PdfReader

from backend.services.csv_export import CsvExportService
from backend.services.excel_export import ExcelExportService, read_cells
from backend.services.export_layout import BACKEND_ROOT, font_path_from
from backend.services.pdf_export import CoverOptions, SummaryPdfRenderer, format_long_date
from ride_ledger.core import Selection
from ride_ledger.models import EnrichedRide


def ride(ride_id, amount, **overrides):
    values = dict(
        ride_id=ride_id,
        start_time="2024-11-16T22:33:00Z",
        end_time="2024-11-16T23:05:00Z",
        start_location="MG Road, Bengaluru",
        end_location="Indiranagar",
        amount=amount,
        currency="INR",
        driver_name="Ravi",
        vehicle_type="UberGo",
        vehicle_category="standard",
        status="COMPLETED",
        map_url="",
        is_auto_type=False,
    )
    values.update(overrides)
    return EnrichedRide(**values)


SELECTION = Selection(rides=(ride("r1", 84.38), ride("r2", 120.0, driver_name='Sam "The Driver"')))


def test_csv_header_and_totals():
    text = CsvExportService().render(SELECTION)
    lines = text.split("\n")

    assert lines[0] == "Ride ID,Pickup,Dropoff,Driver,Vehicle Type,Status,Pickup Address,Destination Address,Amount,Currency"
    assert lines[-1] == ",,,,,,,Total:,204.38,INR"
    assert len(lines) == 4
    assert not text.endswith("\n")


def test_csv_fields_read_back_with_csv_module():
    rows = list(csv.reader(io.StringIO(CsvExportService().render(SELECTION))))

    assert rows[1] == [
        "r1",
        "2024-11-16T22:33:00.000Z",
        "2024-11-16T23:05:00.000Z",
        "Ravi",
        "UberGo",
        "COMPLETED",
        "MG Road, Bengaluru",
        "Indiranagar",
        "84.38",
        "INR",
    ]
    assert rows[2][3] == 'Sam "The Driver"'
    assert rows[2][8] == "120.00"


def test_csv_unparseable_timestamp_is_blank():
    selection = Selection(rides=(ride("r1", 5, start_time="16 Nov • 22:33", end_time=""),))

    row = CsvExportService().build_rows(selection)[0]

    assert row[1] == ""
    assert row[2] == ""
    assert row[8] == "5.00"


def test_pdf_rows_and_totals():
    rows = SummaryPdfRenderer().build_rows(SELECTION)

    assert rows[0][:2] == ["1", "Nov 16, 2024 22:33"]
    assert rows[0][-1] == "₹84.38"
    assert rows[-1][-2:] == ["Grand Total:", "₹204.38"]
    assert all(cell == "" for cell in rows[-1][:-2])


def test_pdf_row_fallbacks_and_other_currencies():
    selection = Selection(
        rides=(ride("r1", 7, currency="SGD", start_time="yesterday", end_time="", driver_name="", vehicle_type=""),)
    )

    row = SummaryPdfRenderer().build_rows(selection)[0]

    assert row[1] == "yesterday"
    assert row[2] == "N/A"
    assert row[3] == "N/A"
    assert row[4] == "N/A"
    assert row[-1] == "SGD 7.00"


def test_pdf_paginates_with_footer_on_every_page():
    selection = Selection(rides=tuple(ride(f"r{i}", 10) for i in range(80)))

    content = SummaryPdfRenderer().render(selection, CoverOptions(account_name="Asha Rao", generated_on=date(2024, 12, 1)))

    reader = PdfReader(io.BytesIO(content))
    assert len(reader.pages) > 1
    texts = [page.extract_text() for page in reader.pages]
    for number, text in enumerate(texts, start=1):
        assert f"Page {number}" in text
    assert "Ride Expense Summary" in texts[0]
    assert "Account: Asha Rao" in texts[0]
    assert "Generated: December 1, 2024" in texts[0]
    assert "Grand Total:" in texts[-1]


def test_pdf_lists_missing_documents():
    content = SummaryPdfRenderer().render(SELECTION, missing_ride_ids=["r2"])

    text = PdfReader(io.BytesIO(content)).pages[0].extract_text()
    assert "Billing documents unavailable for: r2" in text


def test_long_date():
    assert format_long_date(date(2025, 1, 5)) == "January 5, 2025"


def test_xlsx_sheet_contents():
    content = ExcelExportService().generate_export(SELECTION)

    cells = read_cells(content, ["A1", "A2", "D3", "I2", "H4", "I4", "J4"], "Rides")
    assert cells == {
        "A1": "Ride ID",
        "A2": "r1",
        "D3": 'Sam "The Driver"',
        "I2": 84.38,
        "H4": "Total:",
        "I4": 204.38,
        "J4": "INR",
    }


def test_pdf_text_keeps_rupee_sign():
    content = SummaryPdfRenderer().render(SELECTION)

    text = PdfReader(io.BytesIO(content)).pages[0].extract_text()
    assert "₹84.38" in text
    assert "₹204.38" in text
    assert "■" not in text


def test_bundled_font_is_used_by_default(monkeypatch):
    monkeypatch.delenv("RIDE_LEDGER_FONT_PATH", raising=False)

    path = Path(font_path_from({"font": {"path": "fonts/DejaVuSans.ttf"}}))

    assert path.is_file()
    assert path == BACKEND_ROOT / "fonts" / "DejaVuSans.ttf"
    assert SummaryPdfRenderer().font_name == "RideSans"


def test_font_path_override(monkeypatch):
    monkeypatch.setenv("RIDE_LEDGER_FONT_PATH", "/opt/fonts/Custom.ttf")

    assert font_path_from({"font": {"path": "fonts/DejaVuSans.ttf"}}) == "/opt/fonts/Custom.ttf"
