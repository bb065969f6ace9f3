"""
Cloud Service

Recommendations from cloud providers. OCI results are fetched live through
the SDK for each requested profile, collecting per-profile failures so a
batch can succeed partially. AWS results are read from the recommendations
stored by the collector.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import oci
from bson import ObjectId

from ..database import MongoDatabase
from ..errors import (
    InternalError,
    InvalidProfileIdError,
    MultiError,
    NotFoundError,
    ProfileNotFoundError,
)
from .models import (
    AwsRecommendation,
    OciProfile,
    OciProfileRequest,
    OciRecommendation,
    OptimizerCategory,
)
from .oci_client import OciClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures of a single profile; collected instead of aborting the batch
SDK_ERRORS = (
    oci.exceptions.ServiceError,
    oci.exceptions.ClientError,
)


def parse_profile_id(profile_id: str) -> ObjectId:
    if not ObjectId.is_valid(profile_id):
        raise InvalidProfileIdError(profile_id)
    return ObjectId(profile_id)


class CloudService:
    """OCI and AWS recommendation operations"""

    def __init__(self, database: MongoDatabase, client_factory: Callable[[Dict[str, Any]], OciClient] = OciClient):
        self.database = database
        self.client_factory = client_factory

    def _for_each_profile(
        self, profile_ids: Sequence[str], fetch: Callable[[OciClient], List[T]]
    ) -> Tuple[List[T], Optional[MultiError]]:
        """
        Run fetch against every profile, collecting failures

        Args:
            profile_ids: Requested profile ids, as received
            fetch: Callable producing results from a profile's client

        Returns:
            (results, aggregated errors or None)

        Raises:
            InvalidProfileIdError: when no id is a valid ObjectId
            NotFoundError: when no profile succeeded and every failure was a missing profile
            MultiError: when no profile succeeded and some profile failed otherwise
        """
        errors = MultiError()
        valid = []
        for profile_id in profile_ids:
            try:
                valid.append((profile_id, parse_profile_id(profile_id)))
            except InvalidProfileIdError as e:
                errors.append(e)
        if not valid:
            raise InvalidProfileIdError(", ".join(profile_ids))

        results: List[T] = []
        succeeded = 0
        for profile_id, oid in valid:
            profile = self.database.get_oci_profile(oid)
            if profile is None:
                errors.append(ProfileNotFoundError(profile_id))
                continue
            try:
                results.extend(fetch(self.client_factory(profile)))
                succeeded += 1
            except SDK_ERRORS as e:
                logger.warning(f"OCI profile {profile_id} failed: {e}")
                errors.append(InternalError(f"profile {profile_id}", e))

        if succeeded == 0:
            if all(isinstance(e, NotFoundError) for e in errors.errors):
                raise NotFoundError(errors.detail)
            raise errors
        return results, errors or None

    # ========================================================================
    # OCI
    # ========================================================================

    def get_oci_recommendations(
        self, profile_ids: Sequence[str]
    ) -> Tuple[List[OptimizerCategory], Optional[MultiError]]:
        return self._for_each_profile(profile_ids, lambda client: client.list_recommendations_by_category())

    def get_oci_unused_load_balancers(
        self, profile_ids: Sequence[str]
    ) -> Tuple[List[OciRecommendation], Optional[MultiError]]:
        return self._for_each_profile(profile_ids, lambda client: client.list_unused_load_balancers())

    def get_oci_profiles(self) -> List[OciProfile]:
        return [OciProfile.from_document(doc) for doc in self.database.get_oci_profiles()]

    def add_oci_profile(self, request: OciProfileRequest) -> OciProfile:
        doc = request.to_document()
        doc["_id"] = self.database.add_oci_profile(doc)
        logger.info(f"Added OCI profile {request.profile}")
        return OciProfile.from_document(doc)

    def update_oci_profile(self, profile_id: str, request: OciProfileRequest) -> OciProfile:
        oid = parse_profile_id(profile_id)
        doc = request.to_document()
        if self.database.update_oci_profile(oid, doc) == 0:
            raise ProfileNotFoundError(profile_id)
        return OciProfile.from_document({"_id": oid, **doc})

    def delete_oci_profile(self, profile_id: str) -> None:
        oid = parse_profile_id(profile_id)
        if self.database.delete_oci_profile(oid) == 0:
            raise ProfileNotFoundError(profile_id)
        logger.info(f"Deleted OCI profile {profile_id}")

    # ========================================================================
    # AWS
    # ========================================================================

    def get_aws_recommendations(self) -> List[AwsRecommendation]:
        profile_ids = self.database.get_selected_aws_profiles()
        docs = self.database.get_aws_recommendations_by_profiles(profile_ids)
        return [AwsRecommendation.model_validate(doc) for doc in docs]

    def get_last_aws_recommendations(self) -> List[AwsRecommendation]:
        seq_value = self.database.get_last_aws_seq_value()
        docs = self.database.get_aws_recommendations_by_seq_value(seq_value)
        return [AwsRecommendation.model_validate(doc) for doc in docs]
