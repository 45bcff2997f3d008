"""Reporting Layer.

Turns a finished calculation into contract-call parameters, persists it,
and checks contract state against it afterwards.

Components:
- build_report: Assemble rebalance and execution parameter sets
- write_report / load_report: JSON + text persistence
- validate_report: Compare contract state with a report
"""

from index_rebalancer.reporting.report import (
    ParamSetting,
    RebalanceParams,
    RebalanceReport,
    build_report,
    format_report_text,
    load_report,
    summary_frame,
    write_report,
)
from index_rebalancer.reporting.validation import validate_report

__all__ = [
    "RebalanceReport",
    "RebalanceParams",
    "ParamSetting",
    "build_report",
    "format_report_text",
    "summary_frame",
    "write_report",
    "load_report",
    "validate_report",
]
