"""Core types: results, exit codes and configuration."""

from .result import Err, Ok, Result, is_err, is_ok
from .errors import ErrorCode, exit_code_for
from .config import Config, ConfigError, load_config

__all__ = [
    # config
    "Config",
    "ConfigError",
    "load_config",
    # errors
    "ErrorCode",
    "exit_code_for",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
