"""
================================================================================
Calaveras Inventory API - Report Service Unit Tests
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Unit tests for the report service, the business layer between the
    router and the data access layer. The database is mocked; tests check
    which data access call is made and how its results are shaped.

Test Coverage:
    - Paged envelope vs bare list results
    - Host modes, raw host data, archive and lookup errors
    - Spreadsheet variants (sorting, unpaging, LMS template)
    - Patch advisor window computation
    - Cluster node statistics
    - Alert acknowledgement rules
================================================================================
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from inventory.config import ApiServiceConfig
from inventory.database import MongoDatabase
from inventory.errors import ClusterNotFoundError, HostNotFoundError, InvalidAckError
from inventory.reports.filters import AlertFilter, AlertsSelector, GlobalFilter, HostsFilter, SearchFilter
from inventory.reports.models import (
    AlertsByCodeSeverity,
    Cluster,
    HostSummary,
    OracleDatabaseAddm,
    Page,
)
from inventory.reports.service import ReportService, build_result

FIXED_NOW = datetime(2019, 11, 5, 14, 2, 3, tzinfo=timezone.utc)


@pytest.fixture
def database():
    return MagicMock(spec=MongoDatabase)


@pytest.fixture
def service(database):
    return ReportService(database, ApiServiceConfig(), time_now=lambda: FIXED_NOW)


class TestBuildResult:
    """Test result shaping"""

    def test_unpaged_is_list(self, sample_addm_docs):
        result = build_result(OracleDatabaseAddm, sample_addm_docs, 2, SearchFilter())
        assert isinstance(result, list)
        assert result[0].dbname == "ERCOLE"

    def test_paged_is_envelope(self, sample_addm_docs):
        result = build_result(OracleDatabaseAddm, sample_addm_docs, 5, SearchFilter(page=1, size=2))
        assert isinstance(result, Page)
        body = result.to_json()
        assert len(body["Content"]) == 2
        assert body["Metadata"] == {
            "Empty": False,
            "First": True,
            "Last": False,
            "Number": 1,
            "Size": 2,
            "TotalElements": 5,
            "TotalPages": 3,
        }

    def test_last_page(self):
        result = build_result(OracleDatabaseAddm, [], 4, SearchFilter(page=3, size=2))
        assert result.metadata.empty
        assert result.metadata.last
        assert not result.metadata.first


class TestHosts:
    """Test host operations"""

    def test_search_hosts_summary(self, service, database):
        database.search_hosts.return_value = ([{"Hostname": "db01", "CPUCores": 4, "Databases": ["A"]}], 1)
        search = SearchFilter(search="db01")
        result = service.search_hosts("summary", HostsFilter(), search, GlobalFilter())

        database.search_hosts.assert_called_once_with("summary", ["db01"], HostsFilter(), search, GlobalFilter())
        assert isinstance(result[0], HostSummary)
        assert result[0].cpu_cores == 4

    def test_search_hosts_raw(self, service, database):
        raw = {"_id": "x", "hostname": "db01", "info": {"cpuCores": 4}}
        database.search_hosts.return_value = ([raw], 1)
        assert service.search_hosts_raw(HostsFilter(), SearchFilter(), GlobalFilter()) == [raw]
        assert database.search_hosts.call_args[0][0] == "raw"

    def test_hosts_xlsx_is_unpaged(self, service, database):
        database.search_hosts.return_value = ([{"Hostname": "db01"}], 1)
        wb = service.search_hosts_as_xlsx(HostsFilter(), SearchFilter(page=2, size=10), GlobalFilter())

        passed_search = database.search_hosts.call_args[0][3]
        assert not passed_search.paged
        assert wb["Hosts"]["A2"].value == "db01"

    def test_hosts_lms_fills_template(self, database, lms_template):
        config = ApiServiceConfig(resource_file_path=lms_template.parent, lms_template=lms_template.name)
        service = ReportService(database, config)
        database.search_hosts.return_value = ([{"PhysicalServerName": "esx01", "DBInstanceName": "ERCOLE"}], 1)

        wb = service.search_hosts_as_lms(HostsFilter(), SearchFilter(), GlobalFilter())
        assert service.lms_filename() == "hosts_lms.xlsx"

        ws = wb["Database_&_EBS"]
        assert ws["A4"].value == "esx01"
        assert ws["D4"].value == "ERCOLE"
        assert database.search_hosts.call_args[0][0] == "lms"

    def test_lms_filename_follows_macro_template(self, service):
        assert service.lms_filename() == "hosts_lms.xlsm"

    def test_get_host_not_found(self, service, database):
        database.get_host.return_value = None
        with pytest.raises(HostNotFoundError):
            service.get_host("ghost", None)

    def test_archive_host(self, service, database):
        database.archive_host.return_value = 2
        service.archive_host("db01")
        database.archive_host.assert_called_once_with("db01")

    def test_archive_missing_host(self, service, database):
        database.archive_host.return_value = 0
        with pytest.raises(HostNotFoundError):
            service.archive_host("ghost")

    def test_user_locations(self, service, database):
        assert service.list_user_locations(None) == []
        database.get_user_locations.assert_not_called()
        database.get_user_locations.return_value = ["Italy"]
        assert service.list_user_locations("alice") == ["Italy"]


class TestOracleReports:
    """Test Oracle database report operations"""

    def test_addms_xlsx_sorted_by_benefit(self, service, database, sample_addm_docs):
        database.search_addms.return_value = (sample_addm_docs, 2)
        requested = SearchFilter(search="foobar", sort_by="Dbname", page=2, size=10)
        wb = service.search_addms_as_xlsx(requested, GlobalFilter(location="Italy"))

        keywords, search, global_filter = database.search_addms.call_args[0]
        assert keywords == ["foobar"]
        assert search.sort_by == "Benefit"
        assert search.sort_desc
        assert not search.paged
        assert global_filter.location == "Italy"
        assert wb["Addm"].max_row == 3

    def test_patch_advisor_window_start(self, service):
        start = service.patch_advisor_window_start(8)
        assert start == datetime(2019, 3, 5, 14, 2, 3, tzinfo=timezone.utc)

    def test_search_patch_advisors_passes_window(self, service, database):
        database.search_patch_advisors.return_value = ([{"Dbname": "ERCOLE", "Status": "KO"}], 1)
        result = service.search_patch_advisors(SearchFilter(), 6, GlobalFilter(), "KO")

        args = database.search_patch_advisors.call_args[0]
        assert args[2] == datetime(2019, 5, 5, 14, 2, 3, tzinfo=timezone.utc)
        assert args[4] == "KO"
        assert result[0].status == "KO"

    def test_patch_advisors_xlsx_keeps_search_and_sort(self, service, database):
        database.search_patch_advisors.return_value = ([{"Dbname": "ERCOLE", "Status": "KO"}], 1)
        requested = SearchFilter(search="foobar", sort_by="Hostname", sort_desc=True, page=1, size=5)
        wb = service.search_patch_advisors_as_xlsx(requested, 6, GlobalFilter(), "KO")

        keywords, search, _, _, status = database.search_patch_advisors.call_args[0]
        assert keywords == ["foobar"]
        assert search == SearchFilter(search="foobar", sort_by="Hostname", sort_desc=True)
        assert status == "KO"
        assert wb["Patch_Advisor"].max_row == 2

    def test_pdb_changes(self, service, database):
        database.find_oracle_pdb_changes_by_hostname.return_value = [
            {"PdbName": "PDB1", "Updated": FIXED_NOW, "DatafileSize": 10}
        ]
        changes = service.get_oracle_pdb_changes(GlobalFilter(), "db01", None, FIXED_NOW)
        assert changes[0].pdb_name == "PDB1"
        assert changes[0].datafile_size == 10.0


class TestClusters:
    """Test cluster operations"""

    def test_cluster_names_mode(self, service, database):
        database.search_clusters.return_value = ([{"Name": "cluster-a"}], 1)
        names = service.search_clusters("clusternames", SearchFilter(), GlobalFilter())
        assert [name.to_json() for name in names] == [{"Name": "cluster-a"}]

    def test_get_cluster_node_stats(self, service, database):
        database.get_cluster.return_value = {
            "Name": "cluster-a",
            "VMs": [
                {"Name": "vm1", "VirtualizationNode": "esx01", "IsAgentInstalled": True},
                {"Name": "vm2", "VirtualizationNode": "esx01", "IsAgentInstalled": False},
                {"Name": "vm3", "VirtualizationNode": "esx02", "IsAgentInstalled": True},
            ],
        }
        cluster = service.get_cluster("cluster-a", None)

        assert isinstance(cluster, Cluster)
        assert cluster.virtualization_nodes_count == 2
        stats = {s.virtualization_node: s for s in cluster.virtualization_nodes_stats}
        assert stats["esx01"].total_vms_count == 2
        assert stats["esx01"].total_vms_with_agent_count == 1
        assert stats["esx01"].total_vms_without_agent_count == 1
        assert stats["esx02"].total_vms_without_agent_count == 0

    def test_get_cluster_not_found(self, service, database):
        database.get_cluster.return_value = None
        with pytest.raises(ClusterNotFoundError):
            service.get_cluster("ghost", None)

    def test_cluster_vms_xlsx(self, service, database):
        database.get_cluster.return_value = {"Name": "c", "VMs": [{"Name": "vm1", "CappedCPU": True}]}
        wb = service.get_cluster_as_xlsx("c", None)
        ws = wb["VMs"]
        assert ws["A2"].value == "vm1"
        assert ws["E2"].value is True


class TestAlerts:
    """Test alert operations"""

    def test_aggregated_mode_model(self, service, database):
        database.search_alerts.return_value = ([{"Code": "NEW_LICENSE", "Severity": "CRITICAL", "Count": 3}], 1)
        result = service.search_alerts(AlertFilter(mode="aggregated-code-severity"), GlobalFilter())
        assert isinstance(result[0], AlertsByCodeSeverity)
        assert result[0].count == 3

    def test_ack_refuses_no_data_code(self, service, database):
        with pytest.raises(InvalidAckError):
            service.ack_alerts(AlertsSelector(alert_code="NO_DATA"))
        database.update_alerts_status.assert_not_called()

    def test_ack_refuses_selection_with_no_data(self, service, database):
        database.count_alerts_nodata.return_value = 1
        with pytest.raises(InvalidAckError) as exc_info:
            service.ack_alerts(AlertsSelector(hostname="db01"))
        assert exc_info.value.status_code == 422
        database.update_alerts_status.assert_not_called()

    def test_ack_updates_status(self, service, database):
        database.count_alerts_nodata.return_value = 0
        database.update_alerts_status.return_value = 4
        service.ack_alerts(AlertsSelector(hostname="db01"))
        database.update_alerts_status.assert_called_once_with({"hostname": "db01"}, "ACK")

    def test_dismiss(self, service, database):
        service.update_alerts_status(AlertsSelector(alert_category="AGENT"), "DISMISSED")
        database.update_alerts_status.assert_called_once_with({"alertCategory": "AGENT"}, "DISMISSED")

    def test_alerts_xlsx_uses_filters(self, service, database):
        database.get_alerts.return_value = [{"AlertCategory": "AGENT", "Hostname": "db01", "AlertCode": "NO_DATA"}]
        alert_filter = AlertFilter(status="NEW", from_date=FIXED_NOW)
        wb = service.search_alerts_as_xlsx(alert_filter, GlobalFilter(environment="PRD"))

        database.get_alerts.assert_called_once_with(GlobalFilter(environment="PRD"), "NEW", FIXED_NOW, None)
        ws = wb["Alerts"]
        assert ws["A2"].value == "AGENT"
        assert ws["E2"].value == "NO_DATA"


class TestCharts:
    def test_host_cores(self, service, database):
        database.get_host_cores.return_value = [{"Date": FIXED_NOW, "Cores": 12}]
        points = service.get_host_cores(GlobalFilter(), None)
        assert points[0].cores == 12
        assert points[0].to_json() == {"Date": "2019-11-05T14:02:03Z", "Cores": 12}
