"""
Gateway module - HTTP routes for policy execution
"""

from gateway.api import create_app
from gateway.models import ErrorResponse, ExecutePolicyRequest, PolicySummary, RuleSummary

__all__ = [
    "create_app",
    "ExecutePolicyRequest",
    "PolicySummary",
    "RuleSummary",
    "ErrorResponse",
]
