"""
Layered Secure Configuration Service

Ranked configuration sources (programmatic defaults, process environment,
overlay files) merged into one dotted-key store with:
- transparent encryption of sensitive values
- per-key transformers and validators
- aggregated required-key validation
- bounded change history and change watchers
- live reload of overlay files
"""

from .service import ConfigService

from .settings import ConfigServiceSettings

from .contracts import (
    REDACTED,
    ValueKind,
    ConfigValue,
    ConfigEntry,
    ChangeRecord,
    ChangeEvent,
    ServiceState,
    # Errors
    ConfigurationError,
    MissingRequiredKeyError,
    InvalidValueError,
    ConfigValidationError,
    DecryptionError,
    KeyMaterialError,
    OverlaySourceError,
    ConfigInitializationError
)

from .cipher import SecretCipher, KeyMaterialProvider, generate_secure_key
from .store import KeyStore
from .journal import ChangeJournal
from .watch import WatchBus, Subscription
from .environment import EnvBinding, EnvironmentSource, DEFAULT_BINDINGS
from .overlays import OverlayLoader, OverlayReport, MappingSource, FileSource, flatten
from .validation import (
    ValidationPipeline,
    ValidationReport,
    is_port,
    is_positive_int,
    min_length,
    one_of,
    matches
)

__all__ = [
    # Service
    "ConfigService",
    "ConfigServiceSettings",
    # Components
    "SecretCipher",
    "KeyMaterialProvider",
    "generate_secure_key",
    "KeyStore",
    "ChangeJournal",
    "WatchBus",
    "Subscription",
    "EnvBinding",
    "EnvironmentSource",
    "DEFAULT_BINDINGS",
    "OverlayLoader",
    "OverlayReport",
    "MappingSource",
    "FileSource",
    "flatten",
    "ValidationPipeline",
    "ValidationReport",
    # Validators
    "is_port",
    "is_positive_int",
    "min_length",
    "one_of",
    "matches",
    # Models
    "REDACTED",
    "ValueKind",
    "ConfigValue",
    "ConfigEntry",
    "ChangeRecord",
    "ChangeEvent",
    "ServiceState",
    # Errors
    "ConfigurationError",
    "MissingRequiredKeyError",
    "InvalidValueError",
    "ConfigValidationError",
    "DecryptionError",
    "KeyMaterialError",
    "OverlaySourceError",
    "ConfigInitializationError",
]
