"""
Parallel profiling workflow.
Consolidates the worker, the ordered aggregator and the run entry points.
"""

import logging

from .pipeline import RunSummary, UnitResult, process_pair, run_export, run_profile

# Configure a simple logger for the workflow package to hide module names
_workflow_logger = logging.getLogger("pyama_morph.workflow")
if not _workflow_logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    _workflow_logger.addHandler(_handler)
    _workflow_logger.setLevel(logging.INFO)
    _workflow_logger.propagate = False

__all__ = ["RunSummary", "UnitResult", "process_pair", "run_profile", "run_export"]
