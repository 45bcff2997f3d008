"""Custom exceptions for Index Rebalancer.

This module defines the exception hierarchy for the application.

Insufficient quote-asset liquidity during trade scheduling is deliberately
NOT an exception: the scheduler defers unfunded buys and reports them as
deferred entries instead.
"""


class IndexRebalancerError(Exception):
    """Base exception for all Index Rebalancer errors.

    All custom exceptions in the application should inherit from this class.
    """

    pass


class ConfigurationError(IndexRebalancerError):
    """Raised when configuration or input data is invalid or missing.

    Examples:
        - Strategy asset with no matching registry entry
        - Missing required configuration keys
        - On-chain component that is not in the asset registry
        - Quote asset price not available
    """

    pass


class AllocationError(IndexRebalancerError):
    """Base exception for allocation layer errors.

    Parent class for all allocation-related exceptions.
    """

    pass


class DegenerateAllocationError(AllocationError):
    """Raised when allocation arithmetic has no meaningful result.

    Examples:
        - Every asset is capped, so freed weight has nowhere to go
        - Fund value is zero
        - Weighting divisor truncates to zero
    """

    pass


class ReportError(IndexRebalancerError):
    """Raised when a rebalance report cannot be read or written.

    Examples:
        - Report file not found
        - Malformed JSON report
    """

    pass


class ValidationError(IndexRebalancerError):
    """Raised when contract state does not match a generated report.

    Examples:
        - Different position multiplier
        - Target unit, max trade size, exchange or cool-off period mismatch
    """

    pass
