"""
Cloud Models

Records for cloud-provider profiles and cost/usage recommendations. These
serialize with camelCase names, matching the cloud recommendation clients.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from datetime import datetime
from typing import Any, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

RECOMMENDATION_TYPE_UNUSED_RESOURCE = "Unused Resource"


class CloudRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
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


class OciProfile(CloudRecord):
    """Stored OCI credentials; the private key never leaves the service"""
    id: Optional[str] = None
    profile: str = ""
    tenancy_ocid: str = Field("", alias="tenancyOCID")
    user_ocid: str = Field("", alias="userOCID")
    key_fingerprint: str = ""
    region: str = ""
    private_key: Optional[str] = Field(None, exclude=True)

    @classmethod
    def from_document(cls, doc: dict) -> "OciProfile":
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls.model_validate({"id": doc.get("_id"), **data})


class OciProfileRequest(CloudRecord):
    """Body of the create/update configuration endpoints"""
    profile: str
    tenancy_ocid: str = Field(alias="tenancyOCID")
    user_ocid: str = Field(alias="userOCID")
    key_fingerprint: str
    region: str
    private_key: Optional[str] = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class OciRecommendation(CloudRecord):
    type: str = RECOMMENDATION_TYPE_UNUSED_RESOURCE
    compartment_id: str = Field("", alias="compartmentID")
    name: str = ""
    resource_id: str = Field("", alias="resourceID")
    object_type: str = ""
    details: List[dict] = Field(default_factory=list)


class OptimizerRecommendation(CloudRecord):
    name: str = ""
    num_pending: str = "0"
    estimated_cost_saving: str = "0.00"
    status: str = ""
    importance: str = ""
    recommendation_id: str = ""


class OptimizerCategory(CloudRecord):
    name: str = ""
    recommendations: List[OptimizerRecommendation] = Field(default_factory=list)


class AwsRecommendation(CloudRecord):
    seq_value: int = 0
    profile_id: str = Field("", alias="profileID")
    category: str = ""
    suggestion: str = ""
    name: str = ""
    resource_id: str = Field("", alias="resourceID")
    object_type: str = ""
    details: List[dict] = Field(default_factory=list)
    errors: List[dict] = Field(default_factory=list)
    created_at: Optional[datetime] = None
