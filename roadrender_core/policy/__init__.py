"""Policy module - Route classification and render modes."""

from roadrender_core.policy.policy import Policy, RenderMode, WILDCARD
from roadrender_core.policy.table import PolicyTable

__all__ = [
    "Policy",
    "RenderMode",
    "WILDCARD",
    "PolicyTable",
]
