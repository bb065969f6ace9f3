"""
OCI Client

Thin wrapper over the Oracle Cloud Infrastructure SDK, built from a stored
profile. Exposes the optimizer categories/recommendations and the unused
load balancer scan used by the cloud recommendations endpoints.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from typing import Any, Dict, List

import oci
from oci.pagination import list_call_get_all_results

from .models import OciRecommendation, OptimizerCategory, OptimizerRecommendation

logger = logging.getLogger(__name__)

LOAD_BALANCER_OBJECT_TYPE = "Load Balancer"


def build_sdk_config(profile: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a stored profile document into a validated SDK configuration

    Raises:
        oci.exceptions.InvalidConfig: when a required value is missing or malformed
    """
    config = {
        "user": profile.get("userOCID", ""),
        "fingerprint": profile.get("keyFingerprint", ""),
        "tenancy": profile.get("tenancyOCID", ""),
        "region": profile.get("region", ""),
        "key_content": profile.get("privateKey", ""),
    }
    oci.config.validate_config(config)
    return config


class OciClient:
    """SDK clients for one OCI profile"""

    def __init__(self, profile: Dict[str, Any]):
        self.config = build_sdk_config(profile)
        self.tenancy = self.config["tenancy"]

    def list_compartments(self) -> List[Any]:
        identity = oci.identity.IdentityClient(self.config)
        compartments = list_call_get_all_results(
            identity.list_compartments,
            self.tenancy,
            compartment_id_in_subtree=True,
            lifecycle_state="ACTIVE",
        ).data
        # The tenancy itself is the root compartment
        return [identity.get_compartment(self.tenancy).data] + list(compartments)

    def list_categories(self) -> List[Any]:
        optimizer = oci.optimizer.OptimizerClient(self.config)
        return list_call_get_all_results(
            optimizer.list_categories,
            compartment_id=self.tenancy,
            compartment_id_in_subtree=True,
        ).data

    def list_recommendations(self, category_id: str) -> List[OptimizerRecommendation]:
        optimizer = oci.optimizer.OptimizerClient(self.config)
        items = list_call_get_all_results(
            optimizer.list_recommendations,
            compartment_id=self.tenancy,
            compartment_id_in_subtree=True,
            category_id=category_id,
        ).data
        recommendations = []
        for item in items:
            pending = 0
            for resource_count in item.resource_counts or []:
                if resource_count.status == "PENDING":
                    pending = resource_count.count
            recommendations.append(
                OptimizerRecommendation(
                    name=item.name,
                    num_pending=str(pending),
                    estimated_cost_saving=f"{item.estimated_cost_saving or 0:.2f}",
                    status=str(item.status),
                    importance=str(item.importance),
                    recommendation_id=item.id,
                )
            )
        return recommendations

    def list_recommendations_by_category(self) -> List[OptimizerCategory]:
        return [
            OptimizerCategory(name=category.name, recommendations=self.list_recommendations(category.id))
            for category in self.list_categories()
        ]

    def list_unused_load_balancers(self) -> List[OciRecommendation]:
        """Load balancers none of whose backend sets has a backend"""
        client = oci.load_balancer.LoadBalancerClient(self.config)
        unused = []
        for compartment in self.list_compartments():
            load_balancers = list_call_get_all_results(
                client.list_load_balancers,
                compartment_id=compartment.id,
            ).data
            for lb in load_balancers:
                backend_sets = (lb.backend_sets or {}).values()
                if any(backend_set.backends for backend_set in backend_sets):
                    continue
                unused.append(
                    OciRecommendation(
                        compartment_id=compartment.id,
                        name=lb.display_name,
                        resource_id=lb.id,
                        object_type=LOAD_BALANCER_OBJECT_TYPE,
                        details=[
                            {"name": "Load Balancer Name", "value": lb.display_name},
                            {"name": "Shape", "value": lb.shape_name},
                            {"name": "Backend Sets", "value": str(len(backend_sets))},
                        ],
                    )
                )
        logger.info(f"Found {len(unused)} unused load balancers in tenancy {self.tenancy}")
        return unused
