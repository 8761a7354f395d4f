import io

from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def local_date(value):
    return timezone.localtime(value).strftime("%d/%m/%Y") if value else ""


def money(value):
    return float(value or 0)


def xlsx_response(*, file_name, sheet_name, headers, rows):
    """Serve ``rows`` as a one-sheet workbook named ``<file_name>_<YYYY-MM-DD>.xlsx``."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(headers)
    for col in range(1, len(headers) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")
    for row in rows:
        ws.append(row)

    stream = io.BytesIO()
    wb.save(stream)
    response = HttpResponse(stream.getvalue(), content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = (
        f'attachment; filename="{file_name}_{timezone.localdate().isoformat()}.xlsx"'
    )
    return response
