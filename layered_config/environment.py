"""
Environment Source
Maps a read-only snapshot of process environment variables onto configuration keys
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.environment")

_TRUE_VALUES = ('true', '1', 'yes', 'on')
_FALSE_VALUES = ('false', '0', 'no', 'off')


@dataclass(frozen=True)
class EnvBinding:
    """Binds one environment variable to one configuration key"""

    key: str
    env_var: Optional[str] = None
    kind: str = "str"           # str, int, float, bool, list
    default: Any = None
    sensitive: bool = False

    @property
    def variable(self) -> str:
        return self.env_var or self.key.upper().replace(".", "_")


DEFAULT_BINDINGS: List[EnvBinding] = [
    EnvBinding("environment", "ENVIRONMENT", default="development"),
    EnvBinding("log_level", "LOG_LEVEL", default="INFO"),
]


def coerce(raw: str, kind: str) -> Any:
    """
    Convert an environment string to ``kind``.

    Raises:
        ValueError: If ``raw`` cannot be represented as ``kind``
    """
    if kind == "str":
        return raw
    if kind == "int":
        return int(raw.strip())
    if kind == "float":
        return float(raw.strip())
    if kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if kind == "list":
        return [item.strip() for item in raw.split(",") if item.strip()]
    raise ValueError(f"unknown binding kind: {kind}")


class EnvironmentSource:
    """Resolved values for a set of bindings, taken from one environment snapshot"""

    def __init__(self,
                 bindings: Optional[Sequence[EnvBinding]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self.bindings = list(DEFAULT_BINDINGS if bindings is None else bindings)
        self.snapshot: Dict[str, str] = dict(os.environ if environ is None else environ)

    def add_binding(self, binding: EnvBinding) -> None:
        self.bindings = [b for b in self.bindings if b.key != binding.key]
        self.bindings.append(binding)

    def resolve(self) -> Dict[str, Any]:
        """Values per key; unset or unparseable variables fall back to the binding default"""
        values: Dict[str, Any] = {}
        for binding in self.bindings:
            raw = self.snapshot.get(binding.variable)
            if raw is None or raw == "":
                values[binding.key] = binding.default
                continue
            try:
                values[binding.key] = coerce(raw, binding.kind)
            except ValueError as e:
                logger.warning(
                    "environment_value_coercion_failed",
                    env_var=binding.variable,
                    kind=binding.kind,
                    error=str(e) if not binding.sensitive else "redacted"
                )
                values[binding.key] = binding.default
        return values

    def sensitive_keys(self) -> List[str]:
        return [binding.key for binding in self.bindings if binding.sensitive]

    def value(self, key: str, default: Any = None) -> Any:
        return self.resolve().get(key, default)
