import logging

from ._errors import (
    APIError,
    AuthError,
    CacheError,
    ConfigurationError,
    HostedDataError,
    ManifestUnavailableError,
    NetworkError,
    NoDataSourceAvailableError,
    OriginError,
    RateLimitError,
    UnknownTableError,
    WhichLLMError,
    error_exit_code,
)
from ._types import (
    CacheEntry,
    CacheStats,
    Credential,
    Manifest,
    Profile,
    QuotaState,
    Resolution,
    Source,
    Table,
    TableRequest,
)
from ._version import __version__
from .client import WhichLLMClient
from .config import Config
from .resolver import Stage
from .schema import ALL_TABLES, TableDef, get_table_def

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "WhichLLMClient",
    "Config",
    "Stage",
    "ALL_TABLES",
    "TableDef",
    "get_table_def",
    "CacheEntry",
    "CacheStats",
    "Credential",
    "Manifest",
    "Profile",
    "QuotaState",
    "Resolution",
    "Source",
    "Table",
    "TableRequest",
    "WhichLLMError",
    "ConfigurationError",
    "UnknownTableError",
    "CacheError",
    "NetworkError",
    "ManifestUnavailableError",
    "HostedDataError",
    "APIError",
    "AuthError",
    "RateLimitError",
    "OriginError",
    "NoDataSourceAvailableError",
    "error_exit_code",
]
