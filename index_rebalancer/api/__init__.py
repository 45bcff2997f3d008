"""User-friendly APIs for Index Rebalancer.

Components:
- RebalanceAPI: End-to-end rebalance calculation and validation
- RebalancePlan: Result of a calculation
"""

from index_rebalancer.api.rebalance_api import RebalanceAPI, RebalancePlan

__all__ = [
    "RebalanceAPI",
    "RebalancePlan",
]
