"""
Document Store Access

MongoDB data access for the inventory reports. Every public method issues
a single aggregation, query or update against the inventory database and
returns plain documents; typing them is left to the service layer.

Search methods return ``(documents, total)``. When paging is requested the
total comes from a $facet count, otherwise it is the number of documents.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import DatabaseConfig
from .errors import InternalError
from .reports.filters import (
    AlertFilter,
    GlobalFilter,
    HostsFilter,
    SearchFilter,
    global_match,
    location_environment_match,
    oldness_steps,
    paging_steps,
    search_match,
    sort_steps,
)

logger = logging.getLogger(__name__)

HOSTS = "hosts"
ALERTS = "alerts"
USERS = "users"
OCI_PROFILES = "oci_profiles"
AWS_PROFILES = "aws_profiles"
AWS_RECOMMENDATIONS = "aws_recommendations"

ORACLE_DATABASES = "features.oracle.database.databases"

_OS = {"$concat": [{"$ifNull": ["$info.os", ""]}, " ", {"$ifNull": ["$info.osVersion", ""]}]}
_IS_VIRTUAL = {"$eq": ["$info.hardwareAbstraction", "VIRT"]}


def connect(config: DatabaseConfig) -> Tuple[MongoClient, Database]:
    """Open the client and return it together with the inventory database"""
    client = MongoClient(config.uri, serverSelectionTimeoutMS=config.timeout_ms, tz_aware=True)
    logger.info(f"Connected to MongoDB database {config.name!r}")
    return client, client[config.name]


def _regex(value: str) -> Dict[str, Any]:
    return {"$regex": re.escape(value), "$options": "i"}


def _unwind(path: str) -> Dict[str, Any]:
    return {"$unwind": {"path": f"${path}"}}


def _int(expression: Any) -> Dict[str, Any]:
    return {"$toInt": {"$trunc": {"$ifNull": [expression, 0]}}}


def _ratio(numerator: str, denominator: str) -> Dict[str, Any]:
    return {
        "$cond": [
            {"$gt": [{"$ifNull": [denominator, 0]}, 0]},
            _int({"$divide": [numerator, denominator]}),
            0,
        ]
    }


def hosts_filter_match(f: HostsFilter) -> List[Dict[str, Any]]:
    """Translate per-attribute host filters into a $match stage"""
    query: Dict[str, Any] = {}
    if f.hostname:
        query["hostname"] = _regex(f.hostname)
    if f.database:
        query[f"{ORACLE_DATABASES}.name"] = _regex(f.database)
    if f.asset:
        query[f"features.{f.asset.lower()}"] = {"$exists": True, "$ne": None}
    if f.hardware_abstraction_technology:
        query["info.hardwareAbstractionTechnology"] = _regex(f.hardware_abstraction_technology)
    if f.cluster is None:
        query["cluster"] = None
    elif f.cluster:
        query["cluster"] = _regex(f.cluster)
    if f.physical_host:
        query["virtualizationNode"] = _regex(f.physical_host)
    if f.operating_system:
        query["info.os"] = _regex(f.operating_system)
    if f.kernel:
        query["info.kernel"] = _regex(f.kernel)
    if f.cpu_model:
        query["info.cpuModel"] = _regex(f.cpu_model)

    bounds = (
        ("info.memoryTotal", f.gt_memory_total, f.lt_memory_total),
        ("info.swapTotal", f.gt_swap_total, f.lt_swap_total),
        ("info.cpuCores", f.gt_cpu_cores, f.lt_cpu_cores),
        ("info.cpuThreads", f.gt_cpu_threads, f.lt_cpu_threads),
    )
    for path, lower, upper in bounds:
        condition = {}
        if lower is not None:
            condition["$gte"] = lower
        if upper is not None:
            condition["$lte"] = upper
        if condition:
            query[path] = condition

    if f.is_member_of_cluster is not None:
        memberships = [
            {"clusterMembershipStatus.oracleClusterware": True},
            {"clusterMembershipStatus.sunCluster": True},
            {"clusterMembershipStatus.veritasClusterServer": True},
            {"clusterMembershipStatus.hacmp": True},
        ]
        if f.is_member_of_cluster:
            query["$or"] = memberships
        else:
            query["$nor"] = memberships

    return [{"$match": query}] if query else []


# ============================================================================
# PROJECTIONS
# ============================================================================

HOST_FULL_PROJECTION = {
    "_id": 1,
    "Hostname": "$hostname",
    "Location": "$location",
    "Environment": "$environment",
    "AgentVersion": "$agentVersion",
    "CreatedAt": "$createdAt",
    "Cluster": "$cluster",
    "VirtualizationNode": "$virtualizationNode",
    "Info": "$info",
    "Clusters": {"$ifNull": ["$clusters", []]},
    "Features": {"$ifNull": ["$features", {}]},
    "Filesystems": {"$ifNull": ["$filesystems", []]},
}

HOST_SUMMARY_PROJECTION = {
    "_id": 1,
    "Hostname": "$hostname",
    "Location": "$location",
    "Environment": "$environment",
    "HostType": "$info.hardwareAbstraction",
    "Cluster": "$cluster",
    "PhysicalHost": "$virtualizationNode",
    "Version": "$agentVersion",
    "CreatedAt": "$createdAt",
    "Databases": {"$ifNull": [f"${ORACLE_DATABASES}.name", []]},
    "OS": _OS,
    "Kernel": "$info.kernel",
    "OracleCluster": {"$ifNull": ["$clusterMembershipStatus.oracleClusterware", False]},
    "SunCluster": {"$ifNull": ["$clusterMembershipStatus.sunCluster", False]},
    "VeritasCluster": {"$ifNull": ["$clusterMembershipStatus.veritasClusterServer", False]},
    "Virtual": _IS_VIRTUAL,
    "Type": "$info.hardwareAbstractionTechnology",
    "CPUThreads": _int("$info.cpuThreads"),
    "CPUCores": _int("$info.cpuCores"),
    "Socket": _int("$info.cpuSockets"),
    "MemTotal": "$info.memoryTotal",
    "SwapTotal": "$info.swapTotal",
    "CPUModel": "$info.cpuModel",
}

HOST_LMS_PROJECTION = {
    "_id": 0,
    "PhysicalServerName": {"$cond": [_IS_VIRTUAL, "$virtualizationNode", "$hostname"]},
    "VirtualServerName": {"$cond": [_IS_VIRTUAL, "$hostname", ""]},
    "VirtualizationTechnology": "$info.hardwareAbstractionTechnology",
    "DBInstanceName": "$db.name",
    "PluggableDatabaseName": {"$literal": ""},
    "ConnectString": {"$literal": ""},
    "ProductVersion": "$db.version",
    "ProductEdition": "$db.edition",
    "Environment": "$environment",
    "Features": {
        "$reduce": {
            "input": {
                "$filter": {
                    "input": {"$ifNull": ["$db.featureUsageStats", []]},
                    "cond": {"$gt": ["$$this.detectedUsages", 0]},
                }
            },
            "initialValue": "",
            "in": {
                "$concat": [
                    "$$value",
                    {"$cond": [{"$eq": ["$$value", ""]}, "", ", "]},
                    "$$this.feature",
                ]
            },
        }
    },
    "RacNodeNames": {"$literal": ""},
    "ProcessorModel": "$info.cpuModel",
    "Processors": _int("$info.cpuSockets"),
    "CoresPerProcessor": _ratio("$info.cpuCores", "$info.cpuSockets"),
    "PhysicalCores": _int("$info.cpuCores"),
    "ThreadsPerCore": _ratio("$info.cpuThreads", "$info.cpuCores"),
    "ProcessorSpeed": "$info.cpuFrequency",
    "ServerPurchaseDate": {"$literal": ""},
    "OperatingSystem": _OS,
    "Notes": {"$literal": ""},
}

HOST_MHD_PROJECTION = {
    "_id": 0,
    "Hostname": "$hostname",
    "Location": "$location",
    "Environment": "$environment",
    "OS": _OS,
    "CPUModel": "$info.cpuModel",
    "CPUCores": _int("$info.cpuCores"),
    "CPUThreads": _int("$info.cpuThreads"),
    "CPUSockets": _int("$info.cpuSockets"),
    "MemTotal": "$info.memoryTotal",
    "Databases": {"$ifNull": [f"${ORACLE_DATABASES}.name", []]},
}

HOST_PROJECTIONS = {
    "full": HOST_FULL_PROJECTION,
    "summary": HOST_SUMMARY_PROJECTION,
    "mhd": HOST_MHD_PROJECTION,
}

_HOST_COMMON = {
    "_id": 1,
    "Hostname": "$hostname",
    "Location": "$location",
    "Environment": "$environment",
    "CreatedAt": "$createdAt",
}

_VM_MAP = {
    "$map": {
        "input": {"$ifNull": ["$clusters.vms", []]},
        "as": "vm",
        "in": {
            "Name": "$$vm.name",
            "Hostname": "$$vm.hostname",
            "VirtualizationNode": "$$vm.virtualizationNode",
            "CappedCPU": {"$ifNull": ["$$vm.cappedCPU", False]},
            "PhysicalServerModelName": {"$ifNull": ["$$vm.physicalServerModelName", ""]},
        },
    }
}


class MongoDatabase:
    """Data access object for the inventory database"""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _aggregate(self, collection: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        logger.debug(f"Aggregating {collection}: {pipeline}")
        try:
            return list(self.db[collection].aggregate(pipeline))
        except PyMongoError as e:
            logger.error(f"Aggregation on {collection} failed: {e}")
            raise InternalError("DB ERROR", e)

    def _search(
        self,
        collection: str,
        pipeline: List[Dict[str, Any]],
        page: Optional[int],
        size: Optional[int],
    ) -> Tuple[List[Dict[str, Any]], int]:
        if page is None or size is None:
            docs = self._aggregate(collection, pipeline)
            return docs, len(docs)
        result = self._aggregate(collection, pipeline + paging_steps(page, size))
        if not result:
            return [], 0
        facet = result[0]
        total = facet["count"][0]["total"] if facet.get("count") else 0
        return facet.get("content", []), total

    @staticmethod
    def _listing(keywords: Sequence[str], fields: Sequence[str], search: SearchFilter) -> List[Dict[str, Any]]:
        return search_match(keywords, fields) + sort_steps(search.sort_by, search.sort_desc)

    def _oracle_databases_base(self, global_filter: GlobalFilter) -> List[Dict[str, Any]]:
        return global_match(global_filter) + [
            _unwind(ORACLE_DATABASES),
            {"$addFields": {"db": f"${ORACLE_DATABASES}"}},
        ]

    # ------------------------------------------------------------------
    # hosts
    # ------------------------------------------------------------------

    def search_hosts(
        self,
        mode: str,
        keywords: Sequence[str],
        hosts_filter: HostsFilter,
        search: SearchFilter,
        global_filter: GlobalFilter,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Search hosts, shaping each document according to the mode

        Args:
            mode: One of full, summary, lms, mhd, raw
            keywords: Search terms matched against hostname, databases and cluster
            hosts_filter: Per-attribute host filters
            search: Sorting and paging
            global_filter: Location, environment and snapshot time

        Returns:
            (documents, total matching)
        """
        pipeline = (
            global_match(global_filter)
            + hosts_filter_match(hosts_filter)
            + search_match(keywords, ["hostname", f"{ORACLE_DATABASES}.name", "cluster", "virtualizationNode"])
        )
        if mode == "lms":
            pipeline += [
                _unwind(ORACLE_DATABASES),
                {"$addFields": {"db": f"${ORACLE_DATABASES}"}},
                {"$project": HOST_LMS_PROJECTION},
            ]
        elif mode in HOST_PROJECTIONS:
            pipeline.append({"$project": HOST_PROJECTIONS[mode]})
        # mode "raw" returns the documents as stored
        pipeline += sort_steps(search.sort_by, search.sort_desc)
        return self._search(HOSTS, pipeline, search.page, search.size)

    def get_host(self, hostname: str, older_than: Optional[datetime]) -> Optional[Dict[str, Any]]:
        pipeline = [{"$match": {"hostname": hostname}}] + oldness_steps(older_than) + [{"$limit": 1}]
        docs = self._aggregate(HOSTS, pipeline)
        return docs[0] if docs else None

    def archive_host(self, hostname: str) -> int:
        try:
            result = self.db[HOSTS].update_many(
                {"hostname": hostname, "archived": False},
                {"$set": {"archived": True}},
            )
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)
        return result.matched_count

    def _distinct_host_field(self, field_name: str, global_filter: GlobalFilter) -> List[str]:
        pipeline = global_match(global_filter) + [
            {"$group": {"_id": f"${field_name}"}},
            {"$match": {"_id": {"$ne": None}}},
            {"$sort": {"_id": 1}},
        ]
        return [doc["_id"] for doc in self._aggregate(HOSTS, pipeline)]

    def list_locations(self, global_filter: GlobalFilter) -> List[str]:
        return self._distinct_host_field("location", global_filter)

    def list_environments(self, global_filter: GlobalFilter) -> List[str]:
        return self._distinct_host_field("environment", global_filter)

    def get_user_locations(self, username: str) -> List[str]:
        try:
            user = self.db[USERS].find_one({"username": username}, {"locations": 1})
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)
        if not user:
            return []
        return list(user.get("locations") or [])

    # ------------------------------------------------------------------
    # oracle databases
    # ------------------------------------------------------------------

    def search_addms(
        self, keywords: Sequence[str], search: SearchFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = self._oracle_databases_base(global_filter) + [
            _unwind(f"{ORACLE_DATABASES}.addms"),
            {
                "$project": {
                    **_HOST_COMMON,
                    "Dbname": "$db.name",
                    "Action": "$db.addms.action",
                    "Benefit": "$db.addms.benefit",
                    "Finding": "$db.addms.finding",
                    "Recommendation": "$db.addms.recommendation",
                }
            },
        ]
        pipeline += self._listing(keywords, ["Hostname", "Dbname", "Action", "Finding", "Recommendation"], search)
        return self._search(HOSTS, pipeline, search.page, search.size)

    def search_segment_advisors(
        self, keywords: Sequence[str], search: SearchFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = self._oracle_databases_base(global_filter) + [
            _unwind(f"{ORACLE_DATABASES}.segmentAdvisors"),
            {
                "$project": {
                    **_HOST_COMMON,
                    "Dbname": "$db.name",
                    "SegmentOwner": "$db.segmentAdvisors.segmentOwner",
                    "SegmentName": "$db.segmentAdvisors.segmentName",
                    "SegmentType": "$db.segmentAdvisors.segmentType",
                    "PartitionName": "$db.segmentAdvisors.partitionName",
                    "Recommendation": "$db.segmentAdvisors.recommendation",
                    "Reclaimable": {
                        "$cond": [
                            {"$lt": ["$db.segmentAdvisors.reclaimable", 1]},
                            "<1",
                            {"$toString": {"$round": ["$db.segmentAdvisors.reclaimable", 0]}},
                        ]
                    },
                }
            },
        ]
        pipeline += self._listing(
            keywords, ["Hostname", "Dbname", "SegmentOwner", "SegmentName", "PartitionName"], search
        )
        return self._search(HOSTS, pipeline, search.page, search.size)

    def search_patch_advisors(
        self,
        keywords: Sequence[str],
        search: SearchFilter,
        window_start: datetime,
        global_filter: GlobalFilter,
        status: str,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Report the most recent PSU of every database

        A database is OK when its latest PSU is newer than window_start.
        """
        latest_psu = {
            "$reduce": {
                "input": {"$ifNull": ["$db.psus", []]},
                "initialValue": None,
                "in": {
                    "$cond": [
                        {"$or": [{"$eq": ["$$value", None]}, {"$gt": ["$$this.date", "$$value.date"]}]},
                        "$$this",
                        "$$value",
                    ]
                },
            }
        }
        pipeline = self._oracle_databases_base(global_filter) + [
            {"$addFields": {"psu": latest_psu}},
            {
                "$project": {
                    **_HOST_COMMON,
                    "Dbname": "$db.name",
                    "Dbver": "$db.version",
                    "Description": {"$ifNull": ["$psu.description", ""]},
                    "Date": "$psu.date",
                    "Status": {
                        "$cond": [{"$gt": [{"$ifNull": ["$psu.date", None]}, window_start]}, "OK", "KO"]
                    },
                }
            },
        ]
        if status:
            pipeline.append({"$match": {"Status": status}})
        pipeline += self._listing(keywords, ["Hostname", "Dbname", "Dbver", "Description"], search)
        return self._search(HOSTS, pipeline, search.page, search.size)

    def search_oracle_databases(
        self, keywords: Sequence[str], search: SearchFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = self._oracle_databases_base(global_filter) + [
            {
                "$project": {
                    **_HOST_COMMON,
                    "Name": "$db.name",
                    "UniqueName": "$db.uniqueName",
                    "Version": "$db.version",
                    "Status": "$db.status",
                    "Charset": "$db.charset",
                    "BlockSize": "$db.blockSize",
                    "CpuCount": _int("$db.cpuCount"),
                    "Memory": {"$add": [{"$ifNull": ["$db.pgaTarget", 0]}, {"$ifNull": ["$db.sgaTarget", 0]}]},
                    "DatafileSize": "$db.datafileSize",
                    "SegmentsSize": "$db.segmentsSize",
                    "Archivelog": "$db.archivelog",
                    "Dataguard": "$db.dataguard",
                    "Rac": {"$ifNull": ["$db.isRAC", False]},
                    "Ha": {"$or": [{"$ifNull": ["$db.isRAC", False]}, "$db.dataguard"]},
                }
            },
        ]
        pipeline += self._listing(keywords, ["Hostname", "Name", "UniqueName", "Version"], search)
        return self._search(HOSTS, pipeline, search.page, search.size)

    def search_oracle_database_used_licenses(
        self, search: SearchFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = self._oracle_databases_base(global_filter) + [
            _unwind(f"{ORACLE_DATABASES}.licenses"),
            {"$match": {f"{ORACLE_DATABASES}.licenses.count": {"$gt": 0}}},
            {
                "$project": {
                    "_id": 0,
                    "Hostname": "$hostname",
                    "Dbname": "$db.name",
                    "LicenseTypeID": "$db.licenses.licenseTypeID",
                    "Description": "$db.licenses.description",
                    "Metric": "$db.licenses.metric",
                    "UsedLicenses": "$db.licenses.count",
                    "ClusterLicenses": {"$ifNull": ["$db.licenses.clusterLicenses", 0]},
                }
            },
        ]
        pipeline += sort_steps(search.sort_by, search.sort_desc)
        return self._search(HOSTS, pipeline, search.page, search.size)

    def find_all_oracle_database_pdbs(self, global_filter: GlobalFilter) -> List[Dict[str, Any]]:
        pipeline = self._oracle_databases_base(global_filter) + [
            _unwind(f"{ORACLE_DATABASES}.pdbs"),
            {
                "$project": {
                    "_id": 0,
                    "Hostname": "$hostname",
                    "Name": "$db.pdbs.name",
                    "Status": "$db.pdbs.status",
                    "SegmentsSize": "$db.pdbs.segmentsSize",
                    "DatafileSize": "$db.pdbs.datafileSize",
                    "Allocable": "$db.pdbs.allocable",
                    "Charset": "$db.pdbs.charset",
                    "Tablespaces": {"$ifNull": ["$db.pdbs.tablespaces", []]},
                    "Schemas": {"$ifNull": ["$db.pdbs.schemas", []]},
                    "Services": {"$ifNull": ["$db.pdbs.services", []]},
                    "GrantDba": {"$ifNull": ["$db.pdbs.grantDba", []]},
                    "SegmentAdvisors": {"$ifNull": ["$db.pdbs.segmentAdvisors", []]},
                    "Partitionings": {"$ifNull": ["$db.pdbs.partitionings", []]},
                }
            },
        ]
        return self._aggregate(HOSTS, pipeline)

    def find_oracle_pdb_changes_by_hostname(
        self,
        global_filter: GlobalFilter,
        hostname: str,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[Dict[str, Any]]:
        """Size history of every PDB of a host across its snapshots"""
        created_at: Dict[str, Any] = {}
        if start is not None:
            created_at["$gte"] = start
        if end is not None:
            created_at["$lte"] = end
        match: Dict[str, Any] = {"hostname": hostname}
        if created_at:
            match["createdAt"] = created_at
        pipeline = (
            [{"$match": match}]
            + location_environment_match(global_filter.location, global_filter.environment)
            + [
                _unwind(ORACLE_DATABASES),
                _unwind(f"{ORACLE_DATABASES}.pdbs"),
                {
                    "$project": {
                        "_id": 0,
                        "PdbName": f"${ORACLE_DATABASES}.pdbs.name",
                        "Updated": "$createdAt",
                        "DatafileSize": f"${ORACLE_DATABASES}.pdbs.datafileSize",
                        "SegmentsSize": f"${ORACLE_DATABASES}.pdbs.segmentsSize",
                        "Allocable": f"${ORACLE_DATABASES}.pdbs.allocable",
                    }
                },
                {"$sort": {"PdbName": 1, "Updated": 1}},
            ]
        )
        return self._aggregate(HOSTS, pipeline)

    # ------------------------------------------------------------------
    # postgresql
    # ------------------------------------------------------------------

    def search_postgresql_instances(
        self, keywords: Sequence[str], search: SearchFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = global_match(global_filter) + [
            _unwind("features.postgresql.instances"),
            {
                "$project": {
                    **_HOST_COMMON,
                    "_id": 0,
                    "Name": "$features.postgresql.instances.name",
                    "Charset": "$features.postgresql.instances.charset",
                    "Version": "$features.postgresql.instances.version",
                    "DatabasesCount": {"$size": {"$ifNull": ["$features.postgresql.instances.databases", []]}},
                    "UsersCount": {"$size": {"$ifNull": ["$features.postgresql.instances.users", []]}},
                }
            },
        ]
        pipeline += self._listing(keywords, ["Hostname", "Name", "Version"], search)
        return self._search(HOSTS, pipeline, search.page, search.size)

    # ------------------------------------------------------------------
    # clusters
    # ------------------------------------------------------------------

    def _clusters_pipeline(self, global_filter: GlobalFilter) -> List[Dict[str, Any]]:
        return global_match(global_filter) + [
            _unwind("clusters"),
            {
                "$project": {
                    **_HOST_COMMON,
                    "HostnameAgentVirtualization": "$hostname",
                    "FetchEndpoint": {"$ifNull": ["$clusters.fetchEndpoint", ""]},
                    "Name": "$clusters.name",
                    "Type": "$clusters.type",
                    "CPU": _int("$clusters.cpu"),
                    "Sockets": _int("$clusters.sockets"),
                    "VMs": _VM_MAP,
                }
            },
            {
                "$lookup": {
                    "from": HOSTS,
                    "let": {"names": "$VMs.Hostname"},
                    "pipeline": [
                        {
                            "$match": {
                                "$expr": {
                                    "$and": [{"$in": ["$hostname", "$$names"]}, {"$eq": ["$archived", False]}]
                                }
                            }
                        },
                        {"$project": {"_id": 0, "hostname": 1}},
                    ],
                    "as": "agents",
                }
            },
            {
                "$addFields": {
                    "VMs": {
                        "$map": {
                            "input": "$VMs",
                            "as": "vm",
                            "in": {
                                "$mergeObjects": [
                                    "$$vm",
                                    {"IsAgentInstalled": {"$in": ["$$vm.Hostname", "$agents.hostname"]}},
                                ]
                            },
                        }
                    }
                }
            },
            {
                "$addFields": {
                    "VirtualizationNodes": {"$setUnion": ["$VMs.VirtualizationNode", []]},
                    "PhysicalServerModelNames": {"$setUnion": ["$VMs.PhysicalServerModelName", []]},
                    "VMsCount": {"$size": "$VMs"},
                    "VMsAgentCount": {
                        "$size": {"$filter": {"input": "$VMs", "cond": "$$this.IsAgentInstalled"}}
                    },
                }
            },
            {"$project": {"agents": 0}},
        ]

    def search_clusters(
        self,
        mode: str,
        keywords: Sequence[str],
        search: SearchFilter,
        global_filter: GlobalFilter,
    ) -> Tuple[List[Dict[str, Any]], int]:
        pipeline = self._clusters_pipeline(global_filter)
        pipeline += self._listing(keywords, ["Name", "Hostname", "Type"], search)
        if mode == "clusternames":
            pipeline.append({"$project": {"_id": 0, "Name": 1}})
        return self._search(HOSTS, pipeline, search.page, search.size)

    def get_cluster(self, name: str, older_than: Optional[datetime]) -> Optional[Dict[str, Any]]:
        pipeline = self._clusters_pipeline(GlobalFilter(older_than=older_than)) + [
            {"$match": {"Name": name}},
            {"$limit": 1},
        ]
        docs = self._aggregate(HOSTS, pipeline)
        return docs[0] if docs else None

    # ------------------------------------------------------------------
    # alerts
    # ------------------------------------------------------------------

    @staticmethod
    def _alerts_host_steps(global_filter: GlobalFilter) -> List[Dict[str, Any]]:
        """Restrict alerts to hosts matching location/environment"""
        if not global_filter.location and not global_filter.environment:
            return []
        return [
            {
                "$lookup": {
                    "from": HOSTS,
                    "localField": "hostname",
                    "foreignField": "hostname",
                    "pipeline": global_match(global_filter),
                    "as": "host",
                }
            },
            {"$match": {"host": {"$ne": []}}},
            {
                "$addFields": {
                    "location": {"$first": "$host.location"},
                    "environment": {"$first": "$host.environment"},
                }
            },
            {"$project": {"host": 0}},
        ]

    @staticmethod
    def _alerts_match(
        severity: str, status: str, from_date: Optional[datetime], to_date: Optional[datetime]
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if severity:
            query["alertSeverity"] = severity
        if status:
            query["alertStatus"] = status
        date: Dict[str, Any] = {}
        if from_date is not None:
            date["$gte"] = from_date
        if to_date is not None:
            date["$lte"] = to_date
        if date:
            query["date"] = date
        return [{"$match": query}] if query else []

    def search_alerts(
        self, alert_filter: AlertFilter, global_filter: GlobalFilter
    ) -> Tuple[List[Dict[str, Any]], int]:
        search = alert_filter.search
        pipeline = self._alerts_match(
            alert_filter.severity, alert_filter.status, alert_filter.from_date, alert_filter.to_date
        ) + self._alerts_host_steps(global_filter)
        pipeline += search_match(
            search.keywords, ["description", "alertCode", "alertSeverity", "alertCategory", "hostname"]
        )
        if alert_filter.mode == "aggregated-code-severity":
            pipeline += [
                {
                    "$group": {
                        "_id": {"code": "$alertCode", "severity": "$alertSeverity"},
                        "Category": {"$first": "$alertCategory"},
                        "Count": {"$sum": 1},
                        "AffectedHosts": {"$addToSet": "$hostname"},
                        "OldestAlert": {"$min": "$date"},
                        "Description": {"$first": "$description"},
                    }
                },
                {
                    "$project": {
                        "_id": 0,
                        "Code": "$_id.code",
                        "Severity": "$_id.severity",
                        "Category": 1,
                        "Count": 1,
                        "AffectedHosts": {"$size": "$AffectedHosts"},
                        "OldestAlert": 1,
                        "Description": 1,
                    }
                },
            ]
        elif alert_filter.mode == "aggregated-category-technology":
            pipeline += [
                {
                    "$group": {
                        "_id": {"category": "$alertCategory", "technology": "$alertAffectedTechnology"},
                        "Count": {"$sum": 1},
                        "AffectedHosts": {"$addToSet": "$hostname"},
                        "OldestAlert": {"$min": "$date"},
                    }
                },
                {
                    "$project": {
                        "_id": 0,
                        "Category": "$_id.category",
                        "AffectedTechnology": "$_id.technology",
                        "Count": 1,
                        "AffectedHosts": {"$size": "$AffectedHosts"},
                        "OldestAlert": 1,
                    }
                },
            ]
        else:
            pipeline.append({"$project": ALERT_PROJECTION})
        pipeline += sort_steps(search.sort_by, search.sort_desc)
        return self._search(ALERTS, pipeline, search.page, search.size)

    def get_alerts(
        self,
        global_filter: GlobalFilter,
        status: str,
        from_date: Optional[datetime],
        to_date: Optional[datetime],
    ) -> List[Dict[str, Any]]:
        pipeline = (
            self._alerts_match("", status, from_date, to_date)
            + self._alerts_host_steps(global_filter)
            + [{"$project": ALERT_PROJECTION}, {"$sort": {"Date": DESCENDING}}]
        )
        return self._aggregate(ALERTS, pipeline)

    def count_alerts_nodata(self, query: Dict[str, Any]) -> int:
        try:
            return self.db[ALERTS].count_documents({**query, "alertCode": "NO_DATA"})
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def update_alerts_status(self, query: Dict[str, Any], status: str) -> int:
        try:
            result = self.db[ALERTS].update_many(query, {"$set": {"alertStatus": status}})
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)
        return result.modified_count

    # ------------------------------------------------------------------
    # charts
    # ------------------------------------------------------------------

    def get_host_cores(
        self,
        global_filter: GlobalFilter,
        newer_than: Optional[datetime],
    ) -> List[Dict[str, Any]]:
        """Total cores per day, using each host's maximum for that day"""
        created_at: Dict[str, Any] = {}
        if newer_than is not None:
            created_at["$gte"] = newer_than
        if global_filter.older_than is not None:
            created_at["$lte"] = global_filter.older_than
        pipeline = [{"$match": {"createdAt": created_at}}] if created_at else []
        pipeline += location_environment_match(global_filter.location, global_filter.environment)
        pipeline += [
            {
                "$group": {
                    "_id": {
                        "day": {"$dateTrunc": {"date": "$createdAt", "unit": "day"}},
                        "hostname": "$hostname",
                    },
                    "cores": {"$max": {"$ifNull": ["$info.cpuCores", 0]}},
                }
            },
            {"$group": {"_id": "$_id.day", "Cores": {"$sum": "$cores"}}},
            {"$project": {"_id": 0, "Date": "$_id", "Cores": _int("$Cores")}},
            {"$sort": {"Date": 1}},
        ]
        return self._aggregate(HOSTS, pipeline)

    # ------------------------------------------------------------------
    # cloud profiles & recommendations
    # ------------------------------------------------------------------

    def get_oci_profiles(self, hide_private_key: bool = True) -> List[Dict[str, Any]]:
        projection = {"privateKey": 0} if hide_private_key else None
        try:
            return list(self.db[OCI_PROFILES].find({}, projection))
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def get_oci_profile(self, profile_id: ObjectId) -> Optional[Dict[str, Any]]:
        try:
            return self.db[OCI_PROFILES].find_one({"_id": profile_id})
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def add_oci_profile(self, profile: Dict[str, Any]) -> ObjectId:
        try:
            return self.db[OCI_PROFILES].insert_one(profile).inserted_id
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def update_oci_profile(self, profile_id: ObjectId, changes: Dict[str, Any]) -> int:
        try:
            return self.db[OCI_PROFILES].update_one({"_id": profile_id}, {"$set": changes}).matched_count
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def delete_oci_profile(self, profile_id: ObjectId) -> int:
        try:
            return self.db[OCI_PROFILES].delete_one({"_id": profile_id}).deleted_count
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def get_selected_aws_profiles(self) -> List[ObjectId]:
        try:
            return [doc["_id"] for doc in self.db[AWS_PROFILES].find({"selected": True}, {"_id": 1})]
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def get_aws_recommendations_by_profiles(self, profile_ids: Sequence[ObjectId]) -> List[Dict[str, Any]]:
        try:
            return list(self.db[AWS_RECOMMENDATIONS].find({"profileID": {"$in": list(profile_ids)}}))
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)

    def get_last_aws_seq_value(self) -> int:
        try:
            doc = self.db[AWS_RECOMMENDATIONS].find_one({}, {"seqValue": 1}, sort=[("seqValue", DESCENDING)])
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)
        return int(doc["seqValue"]) if doc else 0

    def get_aws_recommendations_by_seq_value(self, seq_value: int) -> List[Dict[str, Any]]:
        try:
            return list(self.db[AWS_RECOMMENDATIONS].find({"seqValue": seq_value}))
        except PyMongoError as e:
            raise InternalError("DB ERROR", e)


ALERT_PROJECTION = {
    "_id": 1,
    "AlertAffectedTechnology": "$alertAffectedTechnology",
    "AlertCategory": "$alertCategory",
    "AlertCode": "$alertCode",
    "AlertSeverity": "$alertSeverity",
    "AlertStatus": "$alertStatus",
    "Date": "$date",
    "Description": "$description",
    "Hostname": "$hostname",
    "Location": {"$ifNull": ["$location", ""]},
    "Environment": {"$ifNull": ["$environment", ""]},
    "OtherInfo": {"$ifNull": ["$otherInfo", {}]},
}
