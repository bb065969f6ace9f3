"""
Cloud Router (API Layer)

FastAPI router for OCI profile management and the OCI/AWS cost
recommendations. Batch endpoints answer 206 when some profiles failed but
others produced results.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..errors import BadRequestError
from ..reports.router import ensure_writable
from .models import OciProfileRequest
from .service import CloudService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["cloud"])

MALFORMED_IDS = "Ids not present or malformed"


def get_cloud_service(request: Request) -> CloudService:
    """Cloud service created by the application factory"""
    return request.app.state.cloud_service


def split_ids(value: Optional[str]) -> List[str]:
    """Comma-separated profile ids; none may be empty"""
    if not value:
        raise BadRequestError(MALFORMED_IDS)
    ids = value.split(",")
    if any(not profile_id for profile_id in ids):
        raise BadRequestError(MALFORMED_IDS)
    return ids


def batch_response(recommendations, errors) -> JSONResponse:
    content = {"recommendations": [r.to_json() for r in recommendations]}
    if errors:
        content["error"] = errors.detail
        return JSONResponse(content=content, status_code=status.HTTP_206_PARTIAL_CONTENT)
    return JSONResponse(content=content)


@router.get("/ping", response_class=PlainTextResponse)
def ping():
    return "Pong"


# ============================================================================
# OCI CONFIGURATIONS
# ============================================================================

@router.get("/oracle-cloud/configurations")
def list_oci_configurations(service: CloudService = Depends(get_cloud_service)):
    """Stored OCI profiles, without their private keys"""
    return JSONResponse(content=[profile.to_json() for profile in service.get_oci_profiles()])


@router.post("/oracle-cloud/configurations", dependencies=[Depends(ensure_writable)])
def add_oci_configuration(body: OciProfileRequest, service: CloudService = Depends(get_cloud_service)):
    profile = service.add_oci_profile(body)
    return JSONResponse(content=profile.to_json(), status_code=status.HTTP_201_CREATED)


@router.put("/oracle-cloud/configurations/{profile_id}", dependencies=[Depends(ensure_writable)])
def update_oci_configuration(
    profile_id: str,
    body: OciProfileRequest,
    service: CloudService = Depends(get_cloud_service),
):
    return JSONResponse(content=service.update_oci_profile(profile_id, body).to_json())


@router.delete("/oracle-cloud/configurations/{profile_id}", dependencies=[Depends(ensure_writable)])
def delete_oci_configuration(profile_id: str, service: CloudService = Depends(get_cloud_service)):
    service.delete_oci_profile(profile_id)
    return JSONResponse(content=None)


# ============================================================================
# RECOMMENDATIONS
# ============================================================================

@router.get("/oracle-cloud/recommendations/{ids}")
def get_oci_recommendations(ids: str, service: CloudService = Depends(get_cloud_service)):
    """Optimizer recommendations grouped by category, for every listed profile"""
    recommendations, errors = service.get_oci_recommendations(split_ids(ids))
    return batch_response(recommendations, errors)


@router.get("/oracle-cloud/loadbalancers")
def get_oci_unused_load_balancers(
    ids: Optional[str] = Query(None),
    service: CloudService = Depends(get_cloud_service),
):
    """Load balancers without any backend, for every listed profile"""
    recommendations, errors = service.get_oci_unused_load_balancers(split_ids(ids))
    if errors:
        logger.warning(f"Unused load balancer scan partially failed: {errors.detail}")
    return batch_response(recommendations, errors)


@router.get("/aws/recommendations")
def get_aws_recommendations(service: CloudService = Depends(get_cloud_service)):
    return JSONResponse(content=[r.to_json() for r in service.get_aws_recommendations()])


@router.get("/aws/recommendations/last")
def get_last_aws_recommendations(service: CloudService = Depends(get_cloud_service)):
    """Recommendations of the most recent collection run"""
    return JSONResponse(content=[r.to_json() for r in service.get_last_aws_recommendations()])
