"""
Results module - Persistence of policy execution results.
"""

from results.db import ResultsDB
from results.models import StoredPolicyExecution
from results.repository import PostgresPolicyResultsRepository

__all__ = [
    "ResultsDB",
    "StoredPolicyExecution",
    "PostgresPolicyResultsRepository",
]
