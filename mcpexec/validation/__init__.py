"""
mcpexec validation module.

This module provides configuration loading and tool parameter validation.
"""

from mcpexec.validation.config import Config, ConfigError, MCPExecConfig
from mcpexec.validation.params import check_type, validate_params

__all__ = ["Config", "ConfigError", "MCPExecConfig", "check_type", "validate_params"]
