"""Policy Store tier — policy/audit authority and its control surface."""

from jade_guard.store.policy_store import PolicyStore, policy_key
from jade_guard.store.server import StoreServer

__all__ = ["PolicyStore", "StoreServer", "policy_key"]
