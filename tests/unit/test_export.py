"""
================================================================================
Calaveras Inventory API - Spreadsheet Export Unit Tests
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Unit tests for openpyxl rendering of report records: header rows,
    cell typing, the LMS template filler and the streaming response.

Test Coverage:
    - Cell value conversion
    - Workbook creation and header styling
    - Row order and column mapping
    - Template loading failures
    - LMS template filling (row 4 onwards, column G untouched)
    - Streaming response headers
================================================================================
"""
import io
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from inventory.errors import InternalError
from inventory.reports import export
from inventory.reports.models import HostLms, OracleDatabaseAddm


class TestCellValue:
    def test_native_types(self):
        assert export.cell_value(3) == 3
        assert export.cell_value(2.5) == 2.5
        assert export.cell_value(True) is True

    def test_datetime_is_iso_text(self):
        value = datetime(2020, 4, 22, 7, 51, 1, tzinfo=timezone.utc)
        assert export.cell_value(value) == "2020-04-22T07:51:01+00:00"

    def test_list_is_comma_joined(self):
        assert export.cell_value(["ERCOLE", "TEST"]) == "ERCOLE, TEST"

    def test_none_is_empty(self):
        assert export.cell_value(None) is None


class TestRecordsWorkbook:
    def test_header_and_rows(self, sample_addm_docs):
        records = [OracleDatabaseAddm.model_validate(doc) for doc in sample_addm_docs]
        wb = export.records_workbook(export.ADDM_SHEET, export.ADDM_COLUMNS, records)

        ws = wb["Addm"]
        headers = [cell.value for cell in ws[1]]
        assert headers == [
            "Action", "Benefit", "CreatedAt", "Dbname", "Environment",
            "Finding", "Hostname", "Location", "Recommendation",
        ]
        assert ws.max_row == 3
        assert ws["B2"].value == 83.34
        assert ws["D2"].value == "ERCOLE"
        assert ws["I3"].value == "Segment Tuning"
        assert ws["A1"].font.bold

    def test_empty_records(self):
        wb = export.records_workbook(export.ALERTS_SHEET, export.ALERTS_COLUMNS, [])
        ws = wb["Alerts"]
        assert ws.max_row == 1
        assert ws["A1"].value == "Category"


class TestTemplates:
    def test_missing_template(self, temp_dir):
        with pytest.raises(InternalError) as exc_info:
            export.open_template(temp_dir / "missing.xlsm", export.LMS_SHEET)
        assert exc_info.value.detail.startswith("READ_TEMPLATE")

    def test_missing_sheet(self, lms_template):
        with pytest.raises(InternalError):
            export.open_template(lms_template, "Other")

    def test_not_a_workbook(self, temp_dir):
        path = temp_dir / "broken.xlsx"
        path.write_text("not a zip file")
        with pytest.raises(InternalError):
            export.open_template(path, export.LMS_SHEET)

    def test_fill_lms_template(self, lms_template):
        records = [
            HostLms(physical_server_name="esx01", virtual_server_name="db01", db_instance_name="ERCOLE",
                    product_version="19", processors=2, physical_cores=16),
            HostLms(physical_server_name="db02", db_instance_name="TEST"),
        ]
        wb, ws = export.open_template(lms_template, export.LMS_SHEET)
        export.fill_lms_template(wb, ws, records)

        assert ws["A4"].value == "esx01"
        assert ws["B4"].value == "db01"
        assert ws["D4"].value == "ERCOLE"
        assert ws["H4"].value == "19"
        assert ws["N4"].value == 2
        assert ws["P4"].value == 16
        assert ws["A5"].value == "db02"
        # Template formula column is preserved
        assert ws["G4"].value == "=A4"
        assert ws["A3"].value == "Physical Server Name"


class TestXlsxResponse:
    def test_streams_workbook(self):
        wb, _ = export.new_workbook("Hosts", ["Hostname"])
        response = export.xlsx_response(wb, "hosts.xlsx")
        assert response.media_type == export.XLSX_MEDIA_TYPE
        assert response.headers["content-disposition"] == "attachment; filename=hosts.xlsx"

    def test_macro_enabled_workbook(self):
        wb, _ = export.new_workbook("Hosts", ["Hostname"])
        response = export.xlsx_response(wb, "hosts_lms.xlsm")
        assert response.media_type == "application/vnd.ms-excel.sheet.macroEnabled.12"

    def test_workbook_round_trip_through_buffer(self):
        wb, ws = export.new_workbook("Hosts", ["Hostname"])
        ws.append(["db01"])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        assert load_workbook(buffer)["Hosts"]["A2"].value == "db01"
