from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from companyops.domain.models import LibertyRequest
from companyops.domain.repositories import LibertyRequestRepository
from companyops.services.liberty import time_slot_label

# =========================
# Helpers
# =========================

def _autosize_columns(ws, max_width: int = 60):
    """Fit column widths to their longest value, capped at ``max_width``."""
    for col_idx, column_cells in enumerate(ws.columns, start=1):
        length = 0
        for cell in column_cells:
            v = "" if cell.value is None else str(cell.value)
            length = max(length, len(v))
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max(10, length + 2), max_width)


def _header(ws, labels: Iterable[str]):
    ws.append(list(labels))
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")
    ws.freeze_panes = "A2"


def _names(people: Optional[List[dict]]) -> str:
    return ", ".join(f"{p.get('rank') or ''} {p.get('name') or ''}".strip() for p in people or [])

# =========================
# Weekend liberty export
# =========================

def export_liberty_xlsx(weekend_date: date, include_pending: bool = False) -> bytes:
    """Workbook of a weekend's liberty requests: one row per request, plus a sheet of time slots.

    Args:
        weekend_date (date): Saturday of the weekend.
        include_pending (bool, optional): Also list requests still awaiting approval.

    Returns:
        bytes: The .xlsx content.
    """
    if include_pending:
        requests = list(
            LibertyRequest.objects
            .filter(weekend_date=weekend_date, status__in=["pending", "approved"])
            .select_related("requester")
            .order_by("requester_name")
        )
    else:
        requests = list(LibertyRequestRepository.approved_for_weekend(weekend_date).select_related("requester"))

    wb = Workbook()
    ws = wb.active
    ws.title = f"Liberty {weekend_date:%Y-%m-%d}"
    _header(ws, [
        "Rank", "Name", "Destination", "Departure", "Return", "Companions",
        "Driver", "Seats", "Contact", "Status", "Approved by",
    ])
    for req in requests:
        row = ws.max_row + 1
        ws.cell(row=row, column=1, value=req.requester.rank if req.requester_id else "")
        ws.cell(row=row, column=2, value=req.requester_name)
        ws.cell(row=row, column=3, value=req.destination)
        dep = ws.cell(row=row, column=4, value=req.departure_date)
        ws.cell(row=row, column=5, value=req.return_date)
        ws.cell(row=row, column=6, value=_names(req.companions))
        ws.cell(row=row, column=7, value="Yes" if req.is_driver else "No")
        ws.cell(row=row, column=8, value=req.passenger_capacity if req.is_driver else None)
        ws.cell(row=row, column=9, value=req.contact_number or "")
        ws.cell(row=row, column=10, value=req.get_status_display())
        ws.cell(row=row, column=11, value=req.approver_initials or "")
        dep.number_format = "YYYY-MM-DD"
        ws.cell(row=row, column=5).number_format = "YYYY-MM-DD"
    _autosize_columns(ws)

    ws2 = wb.create_sheet(title="Time slots")
    _header(ws2, ["Name", "Slot", "From", "To", "Locations", "Participants"])
    for req in requests:
        for slot in req.time_slots or []:
            ws2.append([
                req.requester_name,
                time_slot_label(slot),
                slot.get("start_time") or "",
                slot.get("end_time") or "",
                ", ".join(slot.get("locations") or []),
                _names(slot.get("participants")),
            ])
    _autosize_columns(ws2)

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
