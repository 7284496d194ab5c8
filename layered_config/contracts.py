"""
Layered Configuration Contracts
Value model, change records and the error hierarchy shared by every component
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

REDACTED = "[ENCRYPTED]"

Validator = Callable[[Any], bool]
Transformer = Callable[[Any], Any]


class ValueKind(str, Enum):
    """Variants a configuration payload can take"""
    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    NESTED = "nested"
    LIST = "list"      # opaque leaf, never flattened
    NULL = "null"


class ServiceState(str, Enum):
    """Lifecycle states of the configuration service"""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    VALIDATING = "validating"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ConfigValue:
    """Tagged configuration payload"""

    kind: ValueKind
    raw: Any

    @classmethod
    def of(cls, value: Any) -> 'ConfigValue':
        """Classify a plain Python value; bool is checked before numbers."""
        if value is None:
            return cls(ValueKind.NULL, None)
        if isinstance(value, bool):
            return cls(ValueKind.BOOL, value)
        if isinstance(value, (int, float)):
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, Mapping):
            return cls(ValueKind.NESTED, value)
        if isinstance(value, (list, tuple)):
            return cls(ValueKind.LIST, value)
        raise TypeError(f"Unsupported configuration value type: {type(value).__name__}")

    @property
    def is_empty(self) -> bool:
        return self.kind == ValueKind.NULL or (self.kind == ValueKind.STRING and self.raw == "")


@dataclass
class KeyRules:
    """Per-key metadata registered ahead of (or alongside) values"""

    sensitive: bool = False
    required: bool = False
    validator: Optional[Validator] = None
    transformer: Optional[Transformer] = None


@dataclass(frozen=True)
class ConfigEntry:
    """Read-only snapshot of a single configuration key"""

    key: str
    value: Any
    kind: ValueKind
    sensitive: bool = False
    required: bool = False
    validator: Optional[Validator] = None
    transformer: Optional[Transformer] = None


@dataclass(frozen=True)
class ChangeRecord:
    """One committed mutation of the store"""

    key: str
    previous_value: Any
    new_value: Any
    source: str = "set"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "key": self.key,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "source": self.source,
        }


@dataclass(frozen=True)
class ChangeEvent:
    """Notification delivered to watchers after a commit"""

    key: str
    previous: Any
    next: Any
    source: str = "set"


# Error types
class ConfigurationError(Exception):
    """Base exception for configuration operations"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class MissingRequiredKeyError(ConfigurationError):
    """A required key has no usable value"""

    def __init__(self, key: str):
        super().__init__(f"Missing required configuration key: {key}", details={"key": key})
        self.key = key


class InvalidValueError(ConfigurationError):
    """A validator rejected a value"""

    def __init__(self, key: str, kind: Optional[ValueKind] = None, reason: Optional[str] = None):
        message = f"Invalid configuration value for key: {key}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details={"key": key, "kind": kind.value if kind else None})
        self.key = key
        self.kind = kind


class ConfigValidationError(ConfigurationError):
    """Aggregated validation failure"""

    def __init__(self, failures: List[ConfigurationError]):
        lines = "\n".join(f"  - {failure.message}" for failure in failures)
        super().__init__(
            f"Configuration validation failed with {len(failures)} error(s):\n{lines}",
            details={"keys": [getattr(failure, "key", None) for failure in failures]},
        )
        self.failures = list(failures)

    @property
    def missing_keys(self) -> List[str]:
        return [f.key for f in self.failures if isinstance(f, MissingRequiredKeyError)]

    @property
    def invalid_keys(self) -> List[str]:
        return [f.key for f in self.failures if isinstance(f, InvalidValueError)]


class DecryptionError(ConfigurationError):
    """Ciphertext could not be decrypted with the process key"""
    pass


class KeyMaterialError(ConfigurationError):
    """Injected key material is unusable"""
    pass


class OverlaySourceError(ConfigurationError):
    """An overlay source could not be read or parsed"""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Could not load overlay source {source}: {reason}", details={"source": source})
        self.source = source


class ConfigInitializationError(ConfigurationError):
    """Initialization did not reach the ready state"""
    pass
