"""
Report Service

Business layer of the inventory reports. Each method receives already
parsed filters, performs one (or a small fixed sequence of) data access
calls and returns typed records, a paged envelope or a workbook.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

import pandas as pd
from openpyxl import Workbook

from ..config import ApiServiceConfig
from ..database import MongoDatabase
from ..errors import ClusterNotFoundError, HostNotFoundError, InvalidAckError
from . import export
from .filters import AlertFilter, AlertsSelector, GlobalFilter, HostsFilter, SearchFilter
from .models import (
    Alert,
    AlertsByCategoryTechnology,
    AlertsByCodeSeverity,
    Cluster,
    ClusterName,
    Host,
    HostCores,
    HostLms,
    HostMhd,
    HostSummary,
    InventoryRecord,
    OracleDatabase,
    OracleDatabaseAddm,
    OracleDatabasePatchAdvisor,
    OracleDatabasePluggableDatabase,
    OracleDatabaseSegmentAdvisor,
    OracleDatabaseUsedLicense,
    OraclePdbChange,
    Page,
    PagingMetadata,
    PostgreSqlInstance,
    VirtualizationNodesStat,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=InventoryRecord)

# Either a bare list (unpaged) or a paged envelope
SearchResult = Union[List[Any], Page]

NO_DATA = "NO_DATA"
ALERT_STATUS_ACK = "ACK"
ALERT_STATUS_DISMISSED = "DISMISSED"

HOST_MODELS: Dict[str, Type[InventoryRecord]] = {
    "full": Host,
    "summary": HostSummary,
    "lms": HostLms,
    "mhd": HostMhd,
}

CLUSTER_MODELS: Dict[str, Type[InventoryRecord]] = {
    "full": Cluster,
    "clusternames": ClusterName,
}

ALERT_MODELS: Dict[str, Type[InventoryRecord]] = {
    "all": Alert,
    "aggregated-code-severity": AlertsByCodeSeverity,
    "aggregated-category-technology": AlertsByCategoryTechnology,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_records(model: Type[R], docs: Sequence[Dict[str, Any]]) -> List[R]:
    return [model.model_validate(doc) for doc in docs]


def build_result(model: Type[R], docs: Sequence[Dict[str, Any]], total: int, search: SearchFilter) -> SearchResult:
    """
    Shape search results as a bare list or a paged envelope

    Args:
        model: Record type of every document
        docs: Documents returned by the data access layer
        total: Total number of matching documents
        search: Search filter carrying the requested page and size

    Returns:
        List of records when unpaged, Page otherwise
    """
    records = to_records(model, docs)
    if not search.paged:
        return records
    metadata = PagingMetadata.build(search.page, search.size, total, len(records))
    return Page[model](content=records, metadata=metadata)


class ReportService:
    """Inventory report operations on top of MongoDatabase"""

    def __init__(
        self,
        database: MongoDatabase,
        config: Optional[ApiServiceConfig] = None,
        time_now: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.config = config or ApiServiceConfig()
        self.time_now = time_now

    # ========================================================================
    # ACCESS CONTROL
    # ========================================================================

    def list_user_locations(self, user: Optional[str]) -> List[str]:
        """Locations the caller may see; empty for anonymous callers"""
        if not user:
            return []
        return self.database.get_user_locations(user)

    # ========================================================================
    # HOSTS
    # ========================================================================

    def search_hosts(
        self,
        mode: str,
        hosts_filter: HostsFilter,
        search: SearchFilter,
        global_filter: GlobalFilter,
    ) -> SearchResult:
        docs, total = self.database.search_hosts(mode, search.keywords, hosts_filter, search, global_filter)
        return build_result(HOST_MODELS[mode], docs, total, search)

    def search_hosts_raw(
        self, hosts_filter: HostsFilter, search: SearchFilter, global_filter: GlobalFilter
    ) -> List[Dict[str, Any]]:
        """Full host documents, as stored, for the host-data representation"""
        docs, _ = self.database.search_hosts("raw", search.keywords, hosts_filter, search, global_filter)
        return docs

    def search_hosts_as_xlsx(
        self, hosts_filter: HostsFilter, search: SearchFilter, global_filter: GlobalFilter
    ) -> Workbook:
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        hosts = self.search_hosts("summary", hosts_filter, unpaged, global_filter)
        return export.records_workbook(export.HOSTS_SHEET, export.HOSTS_COLUMNS, hosts)

    def lms_filename(self) -> str:
        """Download name of the LMS workbook, with the template's own extension"""
        return "hosts_lms" + (self.config.lms_template_path.suffix.lower() or ".xlsx")

    def search_hosts_as_lms(
        self, hosts_filter: HostsFilter, search: SearchFilter, global_filter: GlobalFilter
    ) -> Workbook:
        """Fill the LMS compliance template with one row per host database"""
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        hosts = self.search_hosts("lms", hosts_filter, unpaged, global_filter)
        wb, ws = export.open_template(self.config.lms_template_path, export.LMS_SHEET)
        return export.fill_lms_template(wb, ws, hosts)

    def get_host(self, hostname: str, older_than: Optional[datetime]) -> Dict[str, Any]:
        host = self.database.get_host(hostname, older_than)
        if host is None:
            raise HostNotFoundError(hostname)
        return host

    def archive_host(self, hostname: str) -> None:
        if self.database.archive_host(hostname) == 0:
            raise HostNotFoundError(hostname)
        logger.info(f"Archived host {hostname}")

    def list_locations(self, global_filter: GlobalFilter) -> List[str]:
        return self.database.list_locations(global_filter)

    def list_environments(self, global_filter: GlobalFilter) -> List[str]:
        return self.database.list_environments(global_filter)

    # ========================================================================
    # ORACLE DATABASES
    # ========================================================================

    def search_addms(self, search: SearchFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_addms(search.keywords, search, global_filter)
        return build_result(OracleDatabaseAddm, docs, total, search)

    def search_addms_as_xlsx(self, search: SearchFilter, global_filter: GlobalFilter) -> Workbook:
        """Every matching finding, highest benefit first"""
        by_benefit = SearchFilter(search.search, sort_by="Benefit", sort_desc=True)
        addms = self.search_addms(by_benefit, global_filter)
        return export.records_workbook(export.ADDM_SHEET, export.ADDM_COLUMNS, addms)

    def search_segment_advisors(self, search: SearchFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_segment_advisors(search.keywords, search, global_filter)
        return build_result(OracleDatabaseSegmentAdvisor, docs, total, search)

    def search_segment_advisors_as_xlsx(self, search: SearchFilter, global_filter: GlobalFilter) -> Workbook:
        by_reclaimable = SearchFilter(search.search, sort_by="Reclaimable", sort_desc=True)
        advisors = self.search_segment_advisors(by_reclaimable, global_filter)
        return export.records_workbook(
            export.SEGMENT_ADVISOR_SHEET, export.SEGMENT_ADVISOR_COLUMNS, advisors
        )

    def patch_advisor_window_start(self, window_time: int) -> datetime:
        """Start of the window: window_time calendar months before now"""
        start = pd.Timestamp(self.time_now()) - pd.DateOffset(months=window_time)
        return start.to_pydatetime()

    def search_patch_advisors(
        self,
        search: SearchFilter,
        window_time: int,
        global_filter: GlobalFilter,
        status: str,
    ) -> SearchResult:
        window_start = self.patch_advisor_window_start(window_time)
        docs, total = self.database.search_patch_advisors(
            search.keywords, search, window_start, global_filter, status
        )
        return build_result(OracleDatabasePatchAdvisor, docs, total, search)

    def search_patch_advisors_as_xlsx(
        self, search: SearchFilter, window_time: int, global_filter: GlobalFilter, status: str
    ) -> Workbook:
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        advisors = self.search_patch_advisors(unpaged, window_time, global_filter, status)
        return export.records_workbook(export.PATCH_ADVISOR_SHEET, export.PATCH_ADVISOR_COLUMNS, advisors)

    def search_oracle_databases(self, search: SearchFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_oracle_databases(search.keywords, search, global_filter)
        return build_result(OracleDatabase, docs, total, search)

    def search_oracle_databases_as_xlsx(self, search: SearchFilter, global_filter: GlobalFilter) -> Workbook:
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        databases = self.search_oracle_databases(unpaged, global_filter)
        return export.records_workbook(
            export.ORACLE_DATABASES_SHEET, export.ORACLE_DATABASES_COLUMNS, databases
        )

    def search_oracle_database_used_licenses(
        self, search: SearchFilter, global_filter: GlobalFilter
    ) -> SearchResult:
        docs, total = self.database.search_oracle_database_used_licenses(search, global_filter)
        return build_result(OracleDatabaseUsedLicense, docs, total, search)

    def list_oracle_database_pdbs(self, global_filter: GlobalFilter) -> List[OracleDatabasePluggableDatabase]:
        docs = self.database.find_all_oracle_database_pdbs(global_filter)
        return to_records(OracleDatabasePluggableDatabase, docs)

    def get_oracle_pdb_changes(
        self,
        global_filter: GlobalFilter,
        hostname: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[OraclePdbChange]:
        docs = self.database.find_oracle_pdb_changes_by_hostname(global_filter, hostname, start, end)
        return to_records(OraclePdbChange, docs)

    # ========================================================================
    # POSTGRESQL
    # ========================================================================

    def search_postgresql_instances(self, search: SearchFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_postgresql_instances(search.keywords, search, global_filter)
        return build_result(PostgreSqlInstance, docs, total, search)

    def search_postgresql_instances_as_xlsx(self, search: SearchFilter, global_filter: GlobalFilter) -> Workbook:
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        instances = self.search_postgresql_instances(unpaged, global_filter)
        return export.records_workbook(
            export.POSTGRESQL_INSTANCES_SHEET, export.POSTGRESQL_INSTANCES_COLUMNS, instances
        )

    # ========================================================================
    # CLUSTERS
    # ========================================================================

    def search_clusters(self, mode: str, search: SearchFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_clusters(mode, search.keywords, search, global_filter)
        return build_result(CLUSTER_MODELS[mode], docs, total, search)

    def search_clusters_as_xlsx(self, search: SearchFilter, global_filter: GlobalFilter) -> Workbook:
        unpaged = SearchFilter(search.search, search.sort_by, search.sort_desc)
        clusters = self.search_clusters("full", unpaged, global_filter)
        return export.records_workbook(export.CLUSTERS_SHEET, export.CLUSTERS_COLUMNS, clusters)

    def get_cluster(self, name: str, older_than: Optional[datetime]) -> Cluster:
        doc = self.database.get_cluster(name, older_than)
        if doc is None:
            raise ClusterNotFoundError(name)
        cluster = Cluster.model_validate(doc)

        totals: Counter = Counter()
        with_agent: Counter = Counter()
        for vm in cluster.vms:
            totals[vm.virtualization_node] += 1
            if vm.is_agent_installed:
                with_agent[vm.virtualization_node] += 1
        cluster.virtualization_nodes_stats = [
            VirtualizationNodesStat(
                virtualization_node=node,
                total_vms_count=count,
                total_vms_with_agent_count=with_agent[node],
                total_vms_without_agent_count=count - with_agent[node],
            )
            for node, count in sorted(totals.items())
        ]
        cluster.virtualization_nodes_count = len(totals)
        return cluster

    def get_cluster_as_xlsx(self, name: str, older_than: Optional[datetime]) -> Workbook:
        cluster = self.get_cluster(name, older_than)
        return export.records_workbook(export.CLUSTER_VMS_SHEET, export.CLUSTER_VMS_COLUMNS, cluster.vms)

    # ========================================================================
    # ALERTS
    # ========================================================================

    def search_alerts(self, alert_filter: AlertFilter, global_filter: GlobalFilter) -> SearchResult:
        docs, total = self.database.search_alerts(alert_filter, global_filter)
        return build_result(ALERT_MODELS[alert_filter.mode], docs, total, alert_filter.search)

    def search_alerts_as_xlsx(self, alert_filter: AlertFilter, global_filter: GlobalFilter) -> Workbook:
        docs = self.database.get_alerts(global_filter, alert_filter.status, alert_filter.from_date, alert_filter.to_date)
        return export.records_workbook(export.ALERTS_SHEET, export.ALERTS_COLUMNS, to_records(Alert, docs))

    def ack_alerts(self, selector: AlertsSelector) -> None:
        """
        Acknowledge the selected alerts

        Raises:
            InvalidAckError: when the selection includes NO_DATA alerts
        """
        if selector.alert_code == NO_DATA:
            raise InvalidAckError()
        query = selector.to_query()
        if self.database.count_alerts_nodata(query) > 0:
            raise InvalidAckError()
        updated = self.database.update_alerts_status(query, ALERT_STATUS_ACK)
        logger.info(f"Acknowledged {updated} alerts")

    def update_alerts_status(self, selector: AlertsSelector, status: str) -> None:
        updated = self.database.update_alerts_status(selector.to_query(), status)
        logger.info(f"Set status {status} on {updated} alerts")

    # ========================================================================
    # CHARTS
    # ========================================================================

    def get_host_cores(self, global_filter: GlobalFilter, newer_than: Optional[datetime]) -> List[HostCores]:
        docs = self.database.get_host_cores(global_filter, newer_than)
        return to_records(HostCores, docs)
