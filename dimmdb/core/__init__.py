"""Core dimmdb functionality."""

from dimmdb.core.bucket import BucketConfig, BucketState, LeakyBucketAccountant, parse_bucket_config
from dimmdb.core.config import ConfigError, DimmConfig, load_layered_config, resolve_dimm_config
from dimmdb.core.context import Context
from dimmdb.core.dmi import DMIError, MemoryDevice, open_dmi, parse_bank_locator
from dimmdb.core.location import format_location
from dimmdb.core.logging import DiagnosticLogger
from dimmdb.core.memdb import MemoryErrorDB
from dimmdb.core.registry import DimmKey, DimmRecord, DimmRegistry, ErrorCounter
from dimmdb.core.report import DumpFlags

__all__ = [
    "BucketConfig",
    "BucketState",
    "ConfigError",
    "Context",
    "DMIError",
    "DiagnosticLogger",
    "DimmConfig",
    "DimmKey",
    "DimmRecord",
    "DimmRegistry",
    "DumpFlags",
    "ErrorCounter",
    "LeakyBucketAccountant",
    "MemoryDevice",
    "MemoryErrorDB",
    "format_location",
    "load_layered_config",
    "open_dmi",
    "parse_bank_locator",
    "parse_bucket_config",
    "resolve_dimm_config",
]
