from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime, timezone

import pandas as pd

from src.services.errors import BusinessRuleError

CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"


@dataclass(frozen=True)
class ExportFile:
    content: bytes
    media_type: str
    filename: str


def _normalize_format(export_format: str) -> str:
    fmt = (export_format or "csv").lower()
    if fmt in ("xlsx", "excel", "xls"):
        return "xlsx"
    if fmt in ("csv", "pdf"):
        return fmt
    raise BusinessRuleError(f"Unsupported export format: {export_format}", details={"supported": ["csv", "xlsx", "pdf"]})


def _to_pdf(df: pd.DataFrame, title: str) -> bytes:
    """Render the frame as a simple landscape table."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import landscape, letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
    )
    styles = getSampleStyleSheet()
    stamp = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    elements: list = [Paragraph(f"{title} ({stamp})", styles["Title"])]

    data = [list(df.columns)] + df.fillna("").astype(str).values.tolist()
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 7),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    elements.append(table)
    doc.build(elements)
    return buffer.getvalue()


# PUBLIC_INTERFACE
def export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str = "csv") -> ExportFile:
    """
    Serialize a DataFrame to CSV, XLSX (openpyxl) or PDF (reportlab).

    Raises:
        BusinessRuleError: unsupported export format.
    """
    fmt = _normalize_format(export_format)
    if fmt == "csv":
        return ExportFile(
            content=df.to_csv(index=False).encode("utf-8"),
            media_type=CSV_MEDIA_TYPE,
            filename=f"{filename_base}.csv",
        )
    if fmt == "xlsx":
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        return ExportFile(content=buffer.getvalue(), media_type=XLSX_MEDIA_TYPE, filename=f"{filename_base}.xlsx")
    title = filename_base.replace("_", " ").replace("-", " ").title()
    return ExportFile(content=_to_pdf(df, title), media_type=PDF_MEDIA_TYPE, filename=f"{filename_base}.pdf")
