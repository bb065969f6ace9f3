"""
Report Router (API Layer)

FastAPI router exposing the inventory reports. Query parameters arrive as
raw strings and are parsed by dependencies, so malformed values fail with
422 before any service call. The representation is negotiated once per
request from the Accept header.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import dataclasses
import logging
from typing import Any, List, Optional, Union

from bson import ObjectId, json_util
from bson.json_util import RELAXED_JSON_OPTIONS
from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from pydantic import Field

from ..config import Configuration
from ..errors import InventoryError, ReadOnlyError, ValidationError
from .export import xlsx_response
from .filters import (
    ALERT_MODES,
    ALERT_SEVERITIES,
    ALERT_STATUSES,
    CLUSTERS_MODES,
    DEFAULT_WINDOW_TIME,
    HOSTS_MODES,
    PATCH_ADVISOR_STATUSES,
    AlertFilter,
    AlertsSelector,
    GlobalFilter,
    HostsFilter,
    SearchFilter,
    build_hosts_filter,
    parse_bool,
    parse_choice,
    parse_int,
    parse_paging,
    parse_time,
)
from .models import InventoryRecord, Page
from .negotiation import HOSTS_OFFERS, JSON_OR_HOST_DATA, JSON_OR_XLSX, MediaType, negotiate
from .service import ALERT_STATUS_DISMISSED, ReportService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["inventory"])


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_report_service(request: Request) -> ReportService:
    """Report service created by the application factory"""
    return request.app.state.report_service


def get_config(request: Request) -> Configuration:
    return request.app.state.config


def get_current_user(request: Request) -> Optional[str]:
    """Username set on the request by the authentication middleware, if any"""
    return getattr(request.state, "user", None)


def ensure_writable(config: Configuration = Depends(get_config)) -> None:
    if config.api_service.read_only:
        raise ReadOnlyError()


def get_global_filter(
    location: Optional[str] = Query(None),
    environment: Optional[str] = Query(None),
    older_than: Optional[str] = Query(None, alias="older-than"),
) -> GlobalFilter:
    return GlobalFilter(
        location=location or "",
        environment=environment or "",
        older_than=parse_time(older_than, "older-than"),
    )


def get_search_filter(
    search: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sort-by"),
    sort_desc: Optional[str] = Query(None, alias="sort-desc"),
    page: Optional[str] = Query(None),
    size: Optional[str] = Query(None),
) -> SearchFilter:
    page_number, page_size = parse_paging(page, size)
    return SearchFilter(
        search=search or "",
        sort_by=sort_by or "",
        sort_desc=parse_bool(sort_desc, "sort-desc"),
        page=page_number,
        size=page_size,
    )


def get_hosts_filter(request: Request) -> HostsFilter:
    return build_hosts_filter(dict(request.query_params))


def get_alert_filter(
    mode: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    search: SearchFilter = Depends(get_search_filter),
) -> AlertFilter:
    return AlertFilter(
        mode=parse_choice(mode or None, "mode", ALERT_MODES, "all"),
        search=search,
        severity=parse_choice(severity, "severity", ALERT_SEVERITIES),
        status=parse_choice(status, "status", ALERT_STATUSES),
        from_date=parse_time(from_date, "from"),
        to_date=parse_time(to_date, "to"),
    )


def with_user_locations(global_filter: GlobalFilter, service: ReportService, user: Optional[str]) -> GlobalFilter:
    """Default the location filter to the locations the caller may see"""
    if global_filter.location:
        return global_filter
    try:
        locations = service.list_user_locations(user)
    except InventoryError as e:
        logger.warning(f"Unable to list locations of user {user}: {e.detail}")
        raise ValidationError("location", detail=f"unable to list user locations: {e.detail}") from e
    return dataclasses.replace(global_filter, location=",".join(locations))


# ============================================================================
# RENDERING
# ============================================================================

def render_json(result: Union[Page, List[InventoryRecord], InventoryRecord]) -> JSONResponse:
    """Paged envelope, bare array or single record, with PascalCase names"""
    if isinstance(result, (Page, InventoryRecord)):
        return JSONResponse(content=result.to_json())
    return JSONResponse(content=[record.to_json() for record in result])


def render_host_data(documents: Any) -> Response:
    return Response(
        content=json_util.dumps(documents, json_options=RELAXED_JSON_OPTIONS),
        media_type=MediaType.HOST_DATA.value,
    )


def accepted(request: Request, offers) -> MediaType:
    return negotiate(request.headers.get("accept"), offers)


# ============================================================================
# HOSTS
# ============================================================================

@router.get("/hosts")
def search_hosts(
    request: Request,
    mode: Optional[str] = Query(None),
    search: SearchFilter = Depends(get_search_filter),
    hosts_filter: HostsFilter = Depends(get_hosts_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    """Search hosts as JSON, LMS template, summary spreadsheet or raw host data"""
    media_type = accepted(request, HOSTS_OFFERS)
    host_mode = parse_choice(mode or None, "mode", HOSTS_MODES, "full")

    if media_type is MediaType.LMS:
        workbook = service.search_hosts_as_lms(hosts_filter, search, global_filter)
        return xlsx_response(workbook, service.lms_filename())
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_hosts_as_xlsx(hosts_filter, search, global_filter), "hosts.xlsx")
    if media_type is MediaType.HOST_DATA:
        return render_host_data(service.search_hosts_raw(hosts_filter, search, global_filter))
    return render_json(service.search_hosts(host_mode, hosts_filter, search, global_filter))


@router.get("/hosts/{hostname}")
def get_host(
    hostname: str,
    request: Request,
    older_than: Optional[str] = Query(None, alias="older-than"),
    service: ReportService = Depends(get_report_service),
):
    """Single host document; 404 when unknown"""
    media_type = accepted(request, JSON_OR_HOST_DATA)
    bound = parse_time(older_than, "older-than")
    host = service.get_host(hostname, bound)
    if media_type is MediaType.HOST_DATA:
        return render_host_data(host)
    return JSONResponse(content=jsonable_encoder(host, custom_encoder={ObjectId: str}))


@router.delete("/hosts/{hostname}", dependencies=[Depends(ensure_writable)])
def archive_host(hostname: str, service: ReportService = Depends(get_report_service)):
    """Archive every live snapshot of the host"""
    service.archive_host(hostname)
    return JSONResponse(content=None)


@router.get("/locations")
def list_locations(
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    return service.list_locations(global_filter)


@router.get("/environments")
def list_environments(
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    return service.list_environments(global_filter)


# ============================================================================
# ORACLE DATABASE ADVISORS
# ============================================================================

@router.get("/addms")
def search_addms(
    request: Request,
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    user: Optional[str] = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """ADDM findings; the spreadsheet is sorted by benefit, highest first"""
    media_type = accepted(request, JSON_OR_XLSX)
    global_filter = with_user_locations(global_filter, service, user)
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_addms_as_xlsx(search, global_filter), "addms.xlsx")
    return render_json(service.search_addms(search, global_filter))


@router.get("/segment-advisors")
def search_segment_advisors(
    request: Request,
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    user: Optional[str] = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    global_filter = with_user_locations(global_filter, service, user)
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_segment_advisors_as_xlsx(search, global_filter), "segment_advisors.xlsx")
    return render_json(service.search_segment_advisors(search, global_filter))


@router.get("/patch-advisors")
def search_patch_advisors(
    request: Request,
    window_time: Optional[str] = Query(None, alias="window-time"),
    status: Optional[str] = Query(None),
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    user: Optional[str] = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """Latest PSU per database, OK when applied within window-time months"""
    media_type = accepted(request, JSON_OR_XLSX)
    months = parse_int(window_time, "window-time", DEFAULT_WINDOW_TIME)
    psu_status = parse_choice(status, "status", PATCH_ADVISOR_STATUSES)
    global_filter = with_user_locations(global_filter, service, user)
    if media_type is MediaType.XLSX:
        workbook = service.search_patch_advisors_as_xlsx(search, months, global_filter, psu_status)
        return xlsx_response(workbook, "patch_advisors.xlsx")
    return render_json(service.search_patch_advisors(search, months, global_filter, psu_status))


# ============================================================================
# ORACLE DATABASES
# ============================================================================

@router.get("/oracle-databases")
def search_oracle_databases(
    request: Request,
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    user: Optional[str] = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    global_filter = with_user_locations(global_filter, service, user)
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_oracle_databases_as_xlsx(search, global_filter), "oracle_databases.xlsx")
    return render_json(service.search_oracle_databases(search, global_filter))


@router.get("/oracle-databases/licenses-used")
def search_oracle_database_used_licenses(
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    return render_json(service.search_oracle_database_used_licenses(search, global_filter))


@router.get("/oracle-databases/pdbs")
def list_oracle_database_pdbs(
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    return render_json(service.list_oracle_database_pdbs(global_filter))


@router.get("/hosts/{hostname}/oracle-databases/pdb-changes")
def get_oracle_pdb_changes(
    hostname: str,
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    """Size history of the host's pluggable databases"""
    start = parse_time(from_date, "from")
    end = parse_time(to_date, "to")
    return render_json(service.get_oracle_pdb_changes(global_filter, hostname, start, end))


# ============================================================================
# POSTGRESQL
# ============================================================================

@router.get("/postgresql-instances")
def search_postgresql_instances(
    request: Request,
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    user: Optional[str] = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    global_filter = with_user_locations(global_filter, service, user)
    if media_type is MediaType.XLSX:
        workbook = service.search_postgresql_instances_as_xlsx(search, global_filter)
        return xlsx_response(workbook, "postgresql_instances.xlsx")
    return render_json(service.search_postgresql_instances(search, global_filter))


# ============================================================================
# CLUSTERS
# ============================================================================

@router.get("/clusters")
def search_clusters(
    request: Request,
    mode: Optional[str] = Query(None),
    search: SearchFilter = Depends(get_search_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    cluster_mode = parse_choice(mode or None, "mode", CLUSTERS_MODES, "full")
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_clusters_as_xlsx(search, global_filter), "clusters.xlsx")
    return render_json(service.search_clusters(cluster_mode, search, global_filter))


@router.get("/clusters/{name}")
def get_cluster(
    name: str,
    request: Request,
    older_than: Optional[str] = Query(None, alias="older-than"),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    bound = parse_time(older_than, "older-than")
    if media_type is MediaType.XLSX:
        return xlsx_response(service.get_cluster_as_xlsx(name, bound), f"cluster_{name}.xlsx")
    return render_json(service.get_cluster(name, bound))


# ============================================================================
# ALERTS
# ============================================================================

class AlertsSelection(InventoryRecord):
    """Request body selecting the alerts to acknowledge or dismiss"""
    ids: List[str] = Field(default_factory=list, alias="IDs")
    alert_code: str = ""
    alert_category: str = ""
    hostname: str = ""
    location: str = ""
    environment: str = ""

    def to_selector(self) -> AlertsSelector:
        return AlertsSelector(
            ids=tuple(self.ids),
            alert_code=self.alert_code,
            alert_category=self.alert_category,
            hostname=self.hostname,
            location=self.location,
            environment=self.environment,
        )


@router.get("/alerts")
def search_alerts(
    request: Request,
    alert_filter: AlertFilter = Depends(get_alert_filter),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    media_type = accepted(request, JSON_OR_XLSX)
    if media_type is MediaType.XLSX:
        return xlsx_response(service.search_alerts_as_xlsx(alert_filter, global_filter), "alerts.xlsx")
    return render_json(service.search_alerts(alert_filter, global_filter))


@router.post("/alerts/ack", dependencies=[Depends(ensure_writable)])
def ack_alerts(selection: AlertsSelection, service: ReportService = Depends(get_report_service)):
    """Acknowledge alerts; NO_DATA alerts are refused with 422"""
    service.ack_alerts(selection.to_selector())
    return JSONResponse(content=None)


@router.post("/alerts/dismiss", dependencies=[Depends(ensure_writable)])
def dismiss_alerts(selection: AlertsSelection, service: ReportService = Depends(get_report_service)):
    service.update_alerts_status(selection.to_selector(), ALERT_STATUS_DISMISSED)
    return JSONResponse(content=None)


# ============================================================================
# CHARTS
# ============================================================================

@router.get("/charts/host-cores")
def get_host_cores(
    newer_than: Optional[str] = Query(None, alias="newer-than"),
    global_filter: GlobalFilter = Depends(get_global_filter),
    service: ReportService = Depends(get_report_service),
):
    """Total host cores per day between newer-than and older-than"""
    lower = parse_time(newer_than, "newer-than")
    return render_json(service.get_host_cores(global_filter, lower))
