"""
Cloud Module

OCI profile management and OCI/AWS cost recommendations.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""
