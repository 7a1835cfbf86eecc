"""
toolgate - action-execution layer for autonomous coding agents

Agents act on git workspaces and containers only through a registry of
named, schema-described tools. Each tool validates its input, runs argv
commands through an executor, and returns text for the agent plus an
optional signal for the orchestrating state machine.
"""

__version__ = "0.1.0"


__all__ = ["ToolgateConfig", "load_config", "get_toolgate_home", "__version__"]

from .config import ToolgateConfig, get_toolgate_home, load_config
