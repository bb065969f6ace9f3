"""
Report Models

Typed result records returned by the inventory reports. Field names are
snake_case in Python and serialize with the PascalCase names the API
clients consume (e.g. created_at -> CreatedAt).

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import math
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_pascal

T = TypeVar("T")


class InventoryRecord(BaseModel):
    """Base for every record: PascalCase aliases, ObjectIds rendered as hex"""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Missing and null document fields both fall back to the field default
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("*", mode="before")
    @classmethod
    def _object_id_to_str(cls, value: Any) -> Any:
        if isinstance(value, ObjectId):
            return str(value)
        return value

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# PAGING
# ============================================================================

class PagingMetadata(InventoryRecord):
    empty: bool
    first: bool
    last: bool
    number: int
    size: int
    total_elements: int
    total_pages: int

    @classmethod
    def build(cls, page: int, size: int, total: int, count: int) -> "PagingMetadata":
        """
        Compute paging metadata

        Args:
            page: Requested 1-based page number
            size: Requested page size
            total: Total number of matching elements
            count: Number of elements in the returned page

        Returns:
            Metadata describing the page
        """
        total_pages = math.ceil(total / size) if size > 0 else 0
        return cls(
            empty=count == 0,
            first=page <= 1,
            last=page >= total_pages,
            number=page,
            size=size,
            total_elements=total,
            total_pages=total_pages,
        )


class Page(InventoryRecord, Generic[T]):
    """Paged envelope: one page of content plus its metadata"""
    content: List[T] = Field(default_factory=list)
    metadata: PagingMetadata


# ============================================================================
# ORACLE DATABASE ADVISORS
# ============================================================================

class OracleDatabaseAddm(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    action: str = ""
    benefit: float = 0.0
    created_at: Optional[datetime] = None
    dbname: str = ""
    environment: str = ""
    finding: str = ""
    hostname: str = ""
    location: str = ""
    recommendation: str = ""


class OracleDatabaseSegmentAdvisor(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    created_at: Optional[datetime] = None
    dbname: str = ""
    environment: str = ""
    hostname: str = ""
    location: str = ""
    partition_name: str = ""
    # Free text, e.g. "<1"
    reclaimable: str = ""
    recommendation: str = ""
    segment_name: str = ""
    segment_owner: str = ""
    segment_type: str = ""


class OracleDatabasePatchAdvisor(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    created_at: Optional[datetime] = None
    date: Optional[datetime] = None
    dbname: str = ""
    dbver: str = ""
    description: str = ""
    environment: str = ""
    hostname: str = ""
    location: str = ""
    status: str = ""


class OracleDatabase(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    hostname: str = ""
    location: str = ""
    environment: str = ""
    name: str = ""
    unique_name: str = ""
    version: str = ""
    status: str = ""
    charset: str = ""
    block_size: str = ""
    cpu_count: int = 0
    memory: float = 0.0
    datafile_size: float = 0.0
    segments_size: float = 0.0
    archivelog: bool = False
    dataguard: bool = False
    rac: bool = False
    ha: bool = False
    created_at: Optional[datetime] = None


class OracleDatabaseUsedLicense(InventoryRecord):
    hostname: str = ""
    dbname: str = ""
    license_type_id: str = Field("", alias="LicenseTypeID")
    description: str = ""
    metric: str = ""
    used_licenses: float = 0.0
    cluster_licenses: float = 0.0


class OracleDatabasePluggableDatabase(InventoryRecord):
    hostname: str = ""
    name: str = ""
    status: str = ""
    segments_size: float = 0.0
    datafile_size: float = 0.0
    allocable: float = 0.0
    charset: str = ""
    tablespaces: List[dict] = Field(default_factory=list)
    schemas: List[dict] = Field(default_factory=list)
    services: List[dict] = Field(default_factory=list)
    grant_dba: List[dict] = Field(default_factory=list)
    segment_advisors: List[dict] = Field(default_factory=list)
    partitionings: List[dict] = Field(default_factory=list)


class OraclePdbChange(InventoryRecord):
    pdb_name: str = ""
    updated: Optional[datetime] = None
    datafile_size: float = 0.0
    segments_size: float = 0.0
    allocable: float = 0.0


# ============================================================================
# POSTGRESQL
# ============================================================================

class PostgreSqlInstance(InventoryRecord):
    hostname: str = ""
    location: str = ""
    environment: str = ""
    name: str = ""
    charset: str = ""
    version: str = ""
    databases_count: int = 0
    users_count: int = 0
    created_at: Optional[datetime] = None


# ============================================================================
# HOSTS
# ============================================================================

class Host(InventoryRecord):
    """Full-mode host record"""
    id: Optional[str] = Field(None, alias="_id")
    hostname: str = ""
    location: str = ""
    environment: str = ""
    agent_version: str = ""
    created_at: Optional[datetime] = None
    cluster: Optional[str] = None
    virtualization_node: Optional[str] = None
    info: dict = Field(default_factory=dict)
    clusters: List[dict] = Field(default_factory=list)
    features: dict = Field(default_factory=dict)
    filesystems: List[dict] = Field(default_factory=list)


class HostSummary(InventoryRecord):
    """Summary-mode host record, one spreadsheet row per host"""
    id: Optional[str] = Field(None, alias="_id")
    hostname: str = ""
    location: str = ""
    environment: str = ""
    host_type: str = ""
    cluster: Optional[str] = None
    physical_host: Optional[str] = None
    version: str = ""
    created_at: Optional[datetime] = None
    databases: List[str] = Field(default_factory=list)
    os: str = Field("", alias="OS")
    kernel: str = ""
    oracle_cluster: bool = False
    sun_cluster: bool = False
    veritas_cluster: bool = False
    virtual: bool = False
    type: str = ""
    cpu_threads: int = Field(0, alias="CPUThreads")
    cpu_cores: int = Field(0, alias="CPUCores")
    socket: int = 0
    mem_total: float = 0.0
    swap_total: float = 0.0
    cpu_model: str = Field("", alias="CPUModel")


class HostLms(InventoryRecord):
    """LMS-mode record: one row of the licensing compliance template"""
    physical_server_name: str = ""
    virtual_server_name: str = ""
    virtualization_technology: str = ""
    db_instance_name: str = Field("", alias="DBInstanceName")
    pluggable_database_name: str = ""
    connect_string: str = ""
    product_version: str = ""
    product_edition: str = ""
    environment: str = ""
    features: str = ""
    rac_node_names: str = ""
    processor_model: str = ""
    processors: int = 0
    cores_per_processor: int = 0
    physical_cores: int = 0
    threads_per_core: int = 0
    processor_speed: str = ""
    server_purchase_date: str = ""
    operating_system: str = ""
    notes: str = ""


class HostMhd(InventoryRecord):
    """MHD-mode record: hardware and database footprint per host"""
    hostname: str = ""
    location: str = ""
    environment: str = ""
    os: str = Field("", alias="OS")
    cpu_model: str = Field("", alias="CPUModel")
    cpu_cores: int = Field(0, alias="CPUCores")
    cpu_threads: int = Field(0, alias="CPUThreads")
    cpu_sockets: int = Field(0, alias="CPUSockets")
    mem_total: float = 0.0
    databases: List[str] = Field(default_factory=list)


# ============================================================================
# CLUSTERS
# ============================================================================

class VM(InventoryRecord):
    capped_cpu: bool = Field(False, alias="CappedCPU")
    hostname: str = ""
    name: str = ""
    virtualization_node: str = ""
    physical_server_model_name: str = ""
    is_agent_installed: bool = False


class VirtualizationNodesStat(InventoryRecord):
    total_vms_count: int = Field(0, alias="TotalVMsCount")
    total_vms_with_agent_count: int = Field(0, alias="TotalVMsWithAgentCount")
    total_vms_without_agent_count: int = Field(0, alias="TotalVMsWithoutAgentCount")
    virtualization_node: str = ""


class Cluster(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    cpu: int = Field(0, alias="CPU")
    created_at: Optional[datetime] = None
    environment: str = ""
    fetch_endpoint: str = ""
    hostname: str = ""
    hostname_agent_virtualization: str = ""
    location: str = ""
    name: str = ""
    sockets: int = 0
    type: str = ""
    virtualization_nodes: List[str] = Field(default_factory=list)
    virtualization_nodes_count: int = 0
    virtualization_nodes_stats: List[VirtualizationNodesStat] = Field(default_factory=list)
    vms: List[VM] = Field(default_factory=list, alias="VMs")
    vms_count: int = Field(0, alias="VMsCount")
    vms_agent_count: int = Field(0, alias="VMsAgentCount")
    physical_server_model_names: List[str] = Field(default_factory=list)


class ClusterName(InventoryRecord):
    name: str = ""


# ============================================================================
# ALERTS & CHARTS
# ============================================================================

class Alert(InventoryRecord):
    id: Optional[str] = Field(None, alias="_id")
    alert_affected_technology: Optional[str] = None
    alert_category: str = ""
    alert_code: str = ""
    alert_severity: str = ""
    alert_status: str = ""
    date: Optional[datetime] = None
    description: str = ""
    hostname: str = ""
    location: str = ""
    environment: str = ""
    other_info: dict = Field(default_factory=dict)


class HostCores(InventoryRecord):
    date: datetime
    cores: int = 0


class AlertsByCodeSeverity(InventoryRecord):
    code: str = ""
    severity: str = ""
    category: str = ""
    description: str = ""
    count: int = 0
    affected_hosts: int = 0
    oldest_alert: Optional[datetime] = None


class AlertsByCategoryTechnology(InventoryRecord):
    category: str = ""
    affected_technology: Optional[str] = None
    count: int = 0
    affected_hosts: int = 0
    oldest_alert: Optional[datetime] = None
