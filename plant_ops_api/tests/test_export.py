from __future__ import annotations

import io

import pandas as pd
import pytest

from src.services.errors import BusinessRuleError
from src.services.export import CSV_MEDIA_TYPE, PDF_MEDIA_TYPE, XLSX_MEDIA_TYPE, export_dataframe


@pytest.fixture
def frame():
    return pd.DataFrame(
        [
            {"material_code": "RM-001", "quantity_issued": 2.0, "variance_percent": 88.5},
            {"material_code": "RM-002", "quantity_issued": 1.0, "variance_percent": None},
        ]
    )


def test_csv_export(frame):
    out = export_dataframe(frame, "production_reconciliation", "csv")
    assert out.media_type == CSV_MEDIA_TYPE
    assert out.filename == "production_reconciliation.csv"
    lines = out.content.decode("utf-8").splitlines()
    assert lines[0] == "material_code,quantity_issued,variance_percent"
    assert lines[1] == "RM-001,2.0,88.5"
    assert lines[2] == "RM-002,1.0,"


def test_xlsx_export_reads_back(frame):
    out = export_dataframe(frame, "production_reconciliation", "Excel")
    assert out.media_type == XLSX_MEDIA_TYPE
    assert out.filename.endswith(".xlsx")
    back = pd.read_excel(io.BytesIO(out.content), engine="openpyxl")
    assert list(back["material_code"]) == ["RM-001", "RM-002"]


def test_pdf_export(frame):
    out = export_dataframe(frame, "production_reconciliation", "pdf")
    assert out.media_type == PDF_MEDIA_TYPE
    assert out.content.startswith(b"%PDF")


def test_empty_frame_still_exports():
    out = export_dataframe(pd.DataFrame(columns=["a", "b"]), "empty", "pdf")
    assert out.content.startswith(b"%PDF")


def test_unknown_format():
    with pytest.raises(BusinessRuleError) as exc:
        export_dataframe(pd.DataFrame(), "x", "docx")
    assert exc.value.status_code == 422
