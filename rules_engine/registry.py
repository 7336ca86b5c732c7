"""
Policy Registry - Manages registration and retrieval of policies.

Hosts that serve several policies register each one together with the
pydantic model its requests are validated against.
"""

from typing import Dict, Optional, Type

from pydantic import BaseModel

from rules_engine.exceptions import PolicyNotFoundError
from rules_engine.models import Policy


class PolicyRegistry:
    """
    Registry for policies.

    Stores policies by id and provides methods to register, retrieve, and
    query registered policies.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._policies: Dict[str, Policy] = {}
        self._request_models: Dict[str, Optional[Type[BaseModel]]] = {}

    def register(self, policy: Policy, request_model: Optional[Type[BaseModel]] = None) -> None:
        """
        Register a policy.

        Args:
            policy: Policy to register
            request_model: Pydantic model that requests for this policy must match

        Raises:
            ValueError: If policy is not a Policy instance
            KeyError: If a policy with the same id is already registered
                      (to prevent accidental overwrites)
        """
        if not isinstance(policy, Policy):
            raise ValueError(f"Policy must be an instance of Policy, got {type(policy)}")

        if policy.id in self._policies:
            raise KeyError(
                f"Policy '{policy.id}' is already registered. "
                f"Use unregister() first or use a different id."
            )

        self._policies[policy.id] = policy
        self._request_models[policy.id] = request_model

    def unregister(self, policy_id: str) -> None:
        """
        Unregister a policy.

        Raises:
            KeyError: If policy is not registered
        """
        if policy_id not in self._policies:
            raise KeyError(f"Policy '{policy_id}' is not registered")

        del self._policies[policy_id]
        del self._request_models[policy_id]

    def get_policy(self, policy_id: str) -> Optional[Policy]:
        """Return the registered policy, or None."""
        return self._policies.get(policy_id)

    def require_policy(self, policy_id: str) -> Policy:
        """
        Return the registered policy.

        Raises:
            PolicyNotFoundError: If policy is not registered
        """
        policy = self._policies.get(policy_id)
        if policy is None:
            raise PolicyNotFoundError(policy_id)
        return policy

    def get_request_model(self, policy_id: str) -> Optional[Type[BaseModel]]:
        return self._request_models.get(policy_id)

    def get_all_policies(self) -> Dict[str, Policy]:
        return self._policies.copy()  # Return copy to prevent external modification

    def is_registered(self, policy_id: str) -> bool:
        return policy_id in self._policies

    def get_policy_ids(self) -> list[str]:
        return list(self._policies.keys())

    def clear(self) -> None:
        """Clear all registered policies."""
        self._policies.clear()
        self._request_models.clear()

    def count(self) -> int:
        return len(self._policies)
