"""Connections to source and target orgs."""

from .base import OrgConnection, QueryResult
from .salesforce import SalesforceConnection

__all__ = [
    "OrgConnection",
    "QueryResult",
    "SalesforceConnection",
]
