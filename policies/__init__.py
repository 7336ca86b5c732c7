"""
Sample policies built on the rules engine.
"""

from policies.mortgage import MortgageApplication, get_lookup, get_policy

__all__ = [
    "MortgageApplication",
    "get_lookup",
    "get_policy",
]
