"""nestrelay - relay thermostat and sensor telemetry into a document store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nestrelay")
except PackageNotFoundError:
    __version__ = "0+local"

from nestrelay.auditor import AuditorMetrics, InMemoryAuditorMetrics, PeriodicAuditor, StaleDevice
from nestrelay.config import RelayConfig
from nestrelay.exceptions import (
    BadRequestError,
    ForbiddenError,
    InvalidDataError,
    RelayConfigError,
    RelayError,
    StateTokenAlreadyUsedError,
    StateTokenNotFoundError,
    StoreUnavailableError,
    UpstreamUnavailableError,
)
from nestrelay.linker import OAuthLinker
from nestrelay.models import LinkedAccount, NestSnapshot, StateToken, TelemetryAttributes
from nestrelay.provider import NestClient, TelemetryProvider
from nestrelay.relay import TelemetryRelay, display_name, key_for_now
from nestrelay.state_tokens import StateTokenManager
from nestrelay.store import (
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    MemoryDocumentStore,
    SqliteDocumentStore,
)

__all__ = [
    "__version__",
    "AuditorMetrics",
    "BadRequestError",
    "Document",
    "DocumentStore",
    "ForbiddenError",
    "InMemoryAuditorMetrics",
    "InvalidDataError",
    "LinkedAccount",
    "MemoryDocumentStore",
    "NestClient",
    "NestSnapshot",
    "OAuthLinker",
    "PeriodicAuditor",
    "RelayConfig",
    "RelayConfigError",
    "RelayError",
    "SERVER_TIMESTAMP",
    "SqliteDocumentStore",
    "StaleDevice",
    "StateToken",
    "StateTokenAlreadyUsedError",
    "StateTokenManager",
    "StateTokenNotFoundError",
    "StoreUnavailableError",
    "TelemetryAttributes",
    "TelemetryProvider",
    "TelemetryRelay",
    "UpstreamUnavailableError",
    "display_name",
    "key_for_now",
]
