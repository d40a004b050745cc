from __future__ import annotations

from html import escape
from typing import Optional

from .core import Selection, format_money


def render_selection_summary(selection: Selection, account_name: Optional[str] = None) -> str:
    account = (
        f'<p class="account">Account: {escape(account_name)}</p>' if account_name else ""
    )
    if selection.is_empty():
        return (
            '<section class="selection-summary empty">'
            "<h2>Selection Summary</h2>"
            f"{account}"
            "<p>Select one or more rides to export.</p>"
            "</section>"
        )

    edited = sum(1 for ride in selection.rides if ride.original_amount is not None)
    edited_note = f"<p>{edited} amount(s) edited locally</p>" if edited else ""
    return (
        '<section class="selection-summary">'
        "<h2>Selection Summary</h2>"
        f"{account}"
        f"<p>Selected rides: {selection.selected_count}</p>"
        f"<p>Total: {escape(format_money(selection.total_amount, selection.currency))}</p>"
        f"{edited_note}"
        "</section>"
    )
