"""
Report Filters

Parsers turning raw query-string values into typed filters, and builders
turning those filters into aggregation pipeline stages. Every parser fails
with ValidationError naming the offending parameter.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId

from ..errors import ValidationError

# Literal cluster filter value meaning "hosts outside any cluster"
NULL_CLUSTER = "NULL"

HOSTS_MODES = ("full", "summary", "lms", "mhd")
CLUSTERS_MODES = ("full", "clusternames")
PATCH_ADVISOR_STATUSES = ("", "OK", "KO")
ALERT_MODES = ("all", "aggregated-code-severity", "aggregated-category-technology")
ALERT_SEVERITIES = ("", "INFO", "WARNING", "CRITICAL")
ALERT_STATUSES = ("", "NEW", "ACK", "DISMISSED")

DEFAULT_WINDOW_TIME = 6


# ============================================================================
# SCALAR PARSERS
# ============================================================================

def _is_absent(value: Optional[str]) -> bool:
    return value is None or value == ""


def parse_bool(value: Optional[str], field_name: str, default: bool = False) -> bool:
    if _is_absent(value):
        return default
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValidationError(field_name, value)


def parse_optional_bool(value: Optional[str], field_name: str) -> Optional[bool]:
    """Tri-state variant: absent means 'do not filter'"""
    if _is_absent(value):
        return None
    return parse_bool(value, field_name)


def parse_int(value: Optional[str], field_name: str, default: Optional[int] = None) -> Optional[int]:
    if _is_absent(value):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(field_name, value)


def parse_float(value: Optional[str], field_name: str, default: Optional[float] = None) -> Optional[float]:
    if _is_absent(value):
        return default
    try:
        return float(value)
    except ValueError:
        raise ValidationError(field_name, value)


def parse_time(value: Optional[str], field_name: str, default: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse an RFC3339 timestamp into an aware UTC datetime

    Args:
        value: Raw query value, e.g. '2020-06-10T11:54:59Z'
        field_name: Parameter name reported on failure
        default: Returned when the parameter is absent

    Returns:
        Parsed datetime or the default
    """
    if _is_absent(value):
        return default
    # RFC3339 requires the date/time separator and a zone designator
    if "T" not in value.upper():
        raise ValidationError(field_name, value)
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(field_name, value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_choice(value: Optional[str], field_name: str, choices: Sequence[str], default: str = "") -> str:
    if value is None:
        return default
    if value not in choices:
        raise ValidationError(field_name, value)
    return value


def split_keywords(search: Optional[str]) -> List[str]:
    if not search:
        return []
    return search.split()


def parse_paging(page: Optional[str], size: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Parse page/size; both become None (unpaged) when either is absent or -1
    """
    page_value = parse_int(page, "page", -1)
    size_value = parse_int(size, "size", -1)
    if page_value == -1 or size_value == -1:
        return None, None
    return page_value, size_value


# ============================================================================
# FILTER RECORDS
# ============================================================================

@dataclass(frozen=True)
class GlobalFilter:
    """Location/environment/time filter shared by nearly every report"""
    location: str = ""
    environment: str = ""
    older_than: Optional[datetime] = None

    @property
    def locations(self) -> List[str]:
        return [loc for loc in self.location.split(",") if loc]


@dataclass(frozen=True)
class SearchFilter:
    search: str = ""
    sort_by: str = ""
    sort_desc: bool = False
    page: Optional[int] = None
    size: Optional[int] = None

    @property
    def keywords(self) -> List[str]:
        return split_keywords(self.search)

    @property
    def paged(self) -> bool:
        return self.page is not None and self.size is not None


@dataclass(frozen=True)
class HostsFilter:
    """Per-attribute host filters; None disables the corresponding predicate"""
    hostname: str = ""
    database: str = ""
    asset: str = ""
    hardware_abstraction_technology: str = ""
    cluster: Optional[str] = ""
    physical_host: str = ""
    operating_system: str = ""
    kernel: str = ""
    lt_memory_total: Optional[float] = None
    gt_memory_total: Optional[float] = None
    lt_swap_total: Optional[float] = None
    gt_swap_total: Optional[float] = None
    is_member_of_cluster: Optional[bool] = None
    cpu_model: str = ""
    lt_cpu_cores: Optional[int] = None
    gt_cpu_cores: Optional[int] = None
    lt_cpu_threads: Optional[int] = None
    gt_cpu_threads: Optional[int] = None


@dataclass(frozen=True)
class AlertFilter:
    mode: str = "all"
    search: SearchFilter = field(default_factory=SearchFilter)
    severity: str = ""
    status: str = ""
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


@dataclass(frozen=True)
class AlertsSelector:
    """Body of the ack/dismiss endpoints: which alerts to update"""
    ids: Tuple[str, ...] = ()
    alert_code: str = ""
    alert_category: str = ""
    hostname: str = ""
    location: str = ""
    environment: str = ""

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.ids:
            try:
                query["_id"] = {"$in": [ObjectId(i) for i in self.ids]}
            except (InvalidId, TypeError):
                raise ValidationError("ids", ",".join(self.ids))
        if self.alert_code:
            query["alertCode"] = self.alert_code
        if self.alert_category:
            query["alertCategory"] = self.alert_category
        if self.hostname:
            query["hostname"] = self.hostname
        if self.location:
            query["location"] = {"$in": self.location.split(",")}
        if self.environment:
            query["environment"] = self.environment
        return query


def _none_if_unbounded(value):
    return None if value == -1 else value


def build_hosts_filter(params: Dict[str, Optional[str]]) -> HostsFilter:
    """
    Parse the per-attribute host filters from raw query values

    Numeric bounds of -1 are treated as absent.
    """
    cluster = params.get("cluster") or ""
    return HostsFilter(
        hostname=params.get("hostname") or "",
        database=params.get("database") or "",
        asset=params.get("asset") or "",
        hardware_abstraction_technology=params.get("hardware-abstraction-technology") or "",
        cluster=None if cluster == NULL_CLUSTER else cluster,
        physical_host=params.get("physical-host") or "",
        operating_system=params.get("operating-system") or "",
        kernel=params.get("kernel") or "",
        lt_memory_total=_none_if_unbounded(parse_float(params.get("memory-total-lte"), "memory-total-lte")),
        gt_memory_total=_none_if_unbounded(parse_float(params.get("memory-total-gte"), "memory-total-gte")),
        lt_swap_total=_none_if_unbounded(parse_float(params.get("swap-total-lte"), "swap-total-lte")),
        gt_swap_total=_none_if_unbounded(parse_float(params.get("swap-total-gte"), "swap-total-gte")),
        is_member_of_cluster=parse_optional_bool(params.get("is-member-of-cluster"), "is-member-of-cluster"),
        cpu_model=params.get("cpu-model") or "",
        lt_cpu_cores=_none_if_unbounded(parse_int(params.get("cpu-cores-lte"), "cpu-cores-lte")),
        gt_cpu_cores=_none_if_unbounded(parse_int(params.get("cpu-cores-gte"), "cpu-cores-gte")),
        lt_cpu_threads=_none_if_unbounded(parse_int(params.get("cpu-threads-lte"), "cpu-threads-lte")),
        gt_cpu_threads=_none_if_unbounded(parse_int(params.get("cpu-threads-gte"), "cpu-threads-gte")),
    )


# ============================================================================
# PIPELINE STAGE BUILDERS
# ============================================================================

def search_match(keywords: Sequence[str], fields: Sequence[str]) -> List[Dict[str, Any]]:
    """
    Match documents containing every keyword in at least one of the fields

    Args:
        keywords: Search terms, matched case-insensitively as literals
        fields: Document paths searched for each keyword

    Returns:
        A single $match stage, or no stage when there is nothing to search
    """
    if not keywords:
        return []
    clauses = [
        {"$or": [{f: {"$regex": re.escape(kw), "$options": "i"}} for f in fields]}
        for kw in keywords
    ]
    return [{"$match": {"$and": clauses}}]


def sort_steps(sort_by: str, sort_desc: bool) -> List[Dict[str, Any]]:
    if not sort_by:
        return []
    return [{"$sort": {sort_by: -1 if sort_desc else 1}}]


def location_environment_match(location: str, environment: str) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    locations = [loc for loc in location.split(",") if loc]
    if locations:
        query["location"] = {"$in": locations}
    if environment:
        query["environment"] = environment
    return [{"$match": query}] if query else []


def oldness_steps(older_than: Optional[datetime]) -> List[Dict[str, Any]]:
    """
    Select the host snapshot current at older_than

    Without a bound the live (non archived) snapshots are kept. With a bound
    the most recent snapshot per hostname created at or before it is kept.
    """
    if older_than is None:
        return [{"$match": {"archived": False}}]
    return [
        {"$match": {"createdAt": {"$lte": older_than}}},
        {"$sort": {"createdAt": -1}},
        {"$group": {"_id": "$hostname", "doc": {"$first": "$$ROOT"}}},
        {"$replaceRoot": {"newRoot": "$doc"}},
    ]


def paging_steps(page: Optional[int], size: Optional[int]) -> List[Dict[str, Any]]:
    if page is None or size is None:
        return []
    skip = max(page - 1, 0) * size
    return [
        {
            "$facet": {
                "content": [{"$skip": skip}, {"$limit": size}],
                "count": [{"$count": "total"}],
            }
        }
    ]


def global_match(global_filter: GlobalFilter) -> List[Dict[str, Any]]:
    """Oldness plus location/environment stages for host-backed collections"""
    return oldness_steps(global_filter.older_than) + location_environment_match(
        global_filter.location, global_filter.environment
    )
