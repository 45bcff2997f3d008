"""Index Rebalancer: target allocations and trade schedules for index funds."""

__version__ = "0.1.0"
