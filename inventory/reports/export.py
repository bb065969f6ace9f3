"""
Spreadsheet Export

openpyxl rendering of report results. Each report has a fixed sheet name
and column layout; rows are written in result order, one per record, with
numbers and booleans kept as native cells.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import io
import zipfile
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Sequence, Tuple

from fastapi.responses import StreamingResponse
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from ..errors import InternalError
from .models import InventoryRecord

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLSM_MEDIA_TYPE = "application/vnd.ms-excel.sheet.macroEnabled.12"

COLOR_HEADER_BG = "4472C4"
COLOR_HEADER_FG = "FFFFFF"

# (header, record attribute)
Column = Tuple[str, str]

ADDM_SHEET = "Addm"
ADDM_COLUMNS: List[Column] = [
    ("Action", "action"),
    ("Benefit", "benefit"),
    ("CreatedAt", "created_at"),
    ("Dbname", "dbname"),
    ("Environment", "environment"),
    ("Finding", "finding"),
    ("Hostname", "hostname"),
    ("Location", "location"),
    ("Recommendation", "recommendation"),
]

SEGMENT_ADVISOR_SHEET = "Segment_Advisor"
SEGMENT_ADVISOR_COLUMNS: List[Column] = [
    ("Dbname", "dbname"),
    ("Environment", "environment"),
    ("Hostname", "hostname"),
    ("PartitionName", "partition_name"),
    ("Reclaimable", "reclaimable"),
    ("Recommendation", "recommendation"),
    ("SegmentName", "segment_name"),
    ("SegmentOwner", "segment_owner"),
    ("SegmentType", "segment_type"),
]

PATCH_ADVISOR_SHEET = "Patch_Advisor"
PATCH_ADVISOR_COLUMNS: List[Column] = [
    ("Description", "description"),
    ("Hostname", "hostname"),
    ("Dbname", "dbname"),
    ("Dbver", "dbver"),
    ("Date", "date"),
    ("Status", "status"),
]

HOSTS_SHEET = "Hosts"
HOSTS_COLUMNS: List[Column] = [
    ("Hostname", "hostname"),
    ("Environment", "environment"),
    ("HostType", "host_type"),
    ("Cluster", "cluster"),
    ("PhysicalHost", "physical_host"),
    ("Version", "version"),
    ("CreatedAt", "created_at"),
    ("Databases", "databases"),
    ("OS", "os"),
    ("Kernel", "kernel"),
    ("OracleCluster", "oracle_cluster"),
    ("SunCluster", "sun_cluster"),
    ("VeritasCluster", "veritas_cluster"),
    ("Virtual", "virtual"),
    ("Type", "type"),
    ("CPUThreads", "cpu_threads"),
    ("CPUCores", "cpu_cores"),
    ("Socket", "socket"),
    ("MemTotal", "mem_total"),
    ("SwapTotal", "swap_total"),
    ("CPUModel", "cpu_model"),
]

ORACLE_DATABASES_SHEET = "Databases"
ORACLE_DATABASES_COLUMNS: List[Column] = [
    ("Name", "name"),
    ("UniqueName", "unique_name"),
    ("Version", "version"),
    ("Hostname", "hostname"),
    ("Status", "status"),
    ("Environment", "environment"),
    ("Location", "location"),
    ("Charset", "charset"),
    ("BlockSize", "block_size"),
    ("CPUCount", "cpu_count"),
    ("Memory", "memory"),
    ("DatafileSize", "datafile_size"),
    ("SegmentsSize", "segments_size"),
    ("Archivelog", "archivelog"),
    ("Dataguard", "dataguard"),
    ("RAC", "rac"),
    ("HA", "ha"),
]

POSTGRESQL_INSTANCES_SHEET = "Instances"
POSTGRESQL_INSTANCES_COLUMNS: List[Column] = [
    ("Hostname", "hostname"),
    ("Name", "name"),
    ("Charset", "charset"),
    ("Version", "version"),
    ("Environment", "environment"),
    ("Location", "location"),
    ("Databases", "databases_count"),
    ("Users", "users_count"),
]

CLUSTERS_SHEET = "Hypervisor"
CLUSTERS_COLUMNS: List[Column] = [
    ("Name", "name"),
    ("Type", "type"),
    ("CPU", "cpu"),
    ("Sockets", "sockets"),
    ("Physical Hosts", "virtualization_nodes"),
    ("Physical Server Model Names", "physical_server_model_names"),
    ("VMs", "vms_count"),
    ("VMs With Agent", "vms_agent_count"),
]

CLUSTER_VMS_SHEET = "VMs"
CLUSTER_VMS_COLUMNS: List[Column] = [
    ("Name", "name"),
    ("Hostname", "hostname"),
    ("VirtualizationNode", "virtualization_node"),
    ("PhysicalServerModelName", "physical_server_model_name"),
    ("CappedCPU", "capped_cpu"),
]

ALERTS_SHEET = "Alerts"
ALERTS_COLUMNS: List[Column] = [
    ("Category", "alert_category"),
    ("Date", "date"),
    ("Severity", "alert_severity"),
    ("Hostname", "hostname"),
    ("Code", "alert_code"),
    ("Description", "description"),
]

LMS_SHEET = "Database_&_EBS"
# First data row of the LMS template (1-based)
LMS_FIRST_ROW = 4
# Column G of the template is computed by the template itself
LMS_COLUMNS: List[Tuple[int, str]] = [
    (1, "physical_server_name"),
    (2, "virtual_server_name"),
    (3, "virtualization_technology"),
    (4, "db_instance_name"),
    (5, "pluggable_database_name"),
    (6, "connect_string"),
    (8, "product_version"),
    (9, "product_edition"),
    (10, "environment"),
    (11, "features"),
    (12, "rac_node_names"),
    (13, "processor_model"),
    (14, "processors"),
    (15, "cores_per_processor"),
    (16, "physical_cores"),
    (17, "threads_per_core"),
    (18, "processor_speed"),
    (19, "server_purchase_date"),
    (20, "operating_system"),
    (21, "notes"),
]


def cell_value(value: Any) -> Any:
    """Convert a record value to what openpyxl should store in the cell"""
    if value is None:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(v) for v in value)
    return str(value)


def new_workbook(sheet_name: str, headers: Sequence[str]) -> Tuple[Workbook, Worksheet]:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    header_font = Font(bold=True, color=COLOR_HEADER_FG)
    header_fill = PatternFill(start_color=COLOR_HEADER_BG, end_color=COLOR_HEADER_BG, fill_type="solid")
    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    return wb, ws


def write_rows(ws: Worksheet, columns: Sequence[Column], records: Iterable[InventoryRecord]) -> int:
    count = 0
    for record in records:
        ws.append([cell_value(getattr(record, attr)) for _, attr in columns])
        count += 1
    return count


def records_workbook(sheet_name: str, columns: Sequence[Column], records: Iterable[InventoryRecord]) -> Workbook:
    """
    Build a single-sheet workbook: one header row, one row per record

    Args:
        sheet_name: Name of the only sheet
        columns: (header, attribute) pairs in column order
        records: Typed records, written in iteration order

    Returns:
        The populated workbook
    """
    wb, ws = new_workbook(sheet_name, [header for header, _ in columns])
    rows = write_rows(ws, columns, records)
    logger.debug(f"Wrote {rows} rows to sheet {sheet_name}")
    return wb


def open_template(path: Path, sheet_name: str) -> Tuple[Workbook, Worksheet]:
    """Load a spreadsheet template; failures are internal errors"""
    try:
        wb = load_workbook(path, keep_vba=Path(path).suffix.lower() == ".xlsm")
        ws = wb[sheet_name]
    except (OSError, KeyError, ValueError, InvalidFileException, zipfile.BadZipFile) as e:
        logger.error(f"Unable to read template {path}: {e}")
        raise InternalError("READ_TEMPLATE", e)
    return wb, ws


def fill_lms_template(wb: Workbook, ws: Worksheet, records: Iterable[InventoryRecord]) -> Workbook:
    for offset, record in enumerate(records):
        row = LMS_FIRST_ROW + offset
        for column, attr in LMS_COLUMNS:
            ws.cell(row=row, column=column, value=cell_value(getattr(record, attr)))
    return wb


def xlsx_response(wb: Workbook, filename: str) -> StreamingResponse:
    """Stream the workbook as an attachment; .xlsm files keep the macro-enabled type"""
    media_type = XLSM_MEDIA_TYPE if filename.lower().endswith(".xlsm") else XLSX_MEDIA_TYPE
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return StreamingResponse(
        buffer,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
