"""
Reports Module

Inventory report endpoints: hosts, Oracle and PostgreSQL databases,
clusters, alerts and charts. Layered as router, service and data access,
with filter parsing, content negotiation and spreadsheet export alongside.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""
