"""
Catalog compliance monitoring and enforcement core.

Drift detection, scheduled audits, custom catalog rules and the
billing/credit gate for the catalog-quality Shopify app.
"""

__version__ = "0.1.0"
