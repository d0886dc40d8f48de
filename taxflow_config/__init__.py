"""
taxflow_config -- policy configuration for the workflow core.

``load_config()`` is the single entry point: it reads a YAML policy file
(``TAXFLOW_CONFIG`` or an explicit path) into a frozen ``WorkflowConfig``.
The kernel never imports this package; the orchestrator hands the parsed
policies to the services and jobs it builds.
"""

from pathlib import Path

from taxflow_config.loader import load_config, parse_config
from taxflow_config.schema import DEFAULT_CONFIG, JobSchedule, WorkflowConfig

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULTS_FILE",
    "JobSchedule",
    "WorkflowConfig",
    "load_config",
    "parse_config",
]
