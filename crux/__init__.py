"""
Crux Review Platform

Multi-tenant review collection service: tenants collect star ratings,
high ratings are routed to Google, low ratings to an internal feedback form.
Tenant isolation is enforced by a row-level policy engine at the data layer.
"""

__version__ = "1.0.0"
