"""
Validation Pipeline
Required-key and custom-validator checks, reported as one aggregated failure
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .contracts import (
    ConfigValidationError,
    ConfigValue,
    ConfigurationError,
    InvalidValueError,
    MissingRequiredKeyError,
    Validator,
)
from .metrics import config_validation_failures
from .store import KeyStore, _MISSING
from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.validation")


@dataclass
class ValidationReport:
    """Outcome of a validation pass"""

    checked_keys: List[str] = field(default_factory=list)
    failures: List[ConfigurationError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.failures


class ValidationPipeline:
    """Checks required keys and validated keys against a KeyStore"""

    def __init__(self, store: KeyStore):
        self.store = store

    def require_key(self, key: str, validator: Optional[Validator] = None) -> 'ValidationPipeline':
        """Register ``key`` as mandatory, optionally with its validator"""
        self.store.mark_required(key)
        if validator is not None:
            self.store.add_validator(key, validator)
        return self

    def collect_failures(self) -> List[ConfigurationError]:
        """Every failure in one pass, required keys first; nothing is raised"""
        failures: List[ConfigurationError] = []
        required = self.store.required_keys()

        for key in required:
            value = self.store.get(key, _MISSING)
            if value is _MISSING or value is None or value == "":
                failures.append(MissingRequiredKeyError(key))
                continue
            failure = self._check(key, value)
            if failure is not None:
                failures.append(failure)

        # Optional keys are only checked when a value is present
        for key in self.store.validated_keys():
            if key in required:
                continue
            value = self.store.get(key, _MISSING)
            if value is _MISSING:
                continue
            failure = self._check(key, value)
            if failure is not None:
                failures.append(failure)

        return failures

    def _check(self, key: str, value: Any) -> Optional[InvalidValueError]:
        validator = self.store.rules(key).validator
        if validator is None:
            return None
        kind = ConfigValue.of(value).kind
        try:
            if validator(value):
                return None
        except Exception as e:
            return InvalidValueError(key, kind, reason=f"validator failed: {e}")
        return InvalidValueError(key, kind)

    def check(self) -> ValidationReport:
        """Validate without raising; ``report.valid`` tells whether the pass was clean"""
        checked = sorted(set(self.store.required_keys()) | set(self.store.validated_keys()))
        return ValidationReport(checked_keys=checked, failures=self.collect_failures())

    def validate_all(self) -> ValidationReport:
        """
        Validate the whole store.

        Raises:
            ConfigValidationError: Carrying every missing and invalid key found
        """
        report = self.check()
        if not report.valid:
            for failure in report.failures:
                kind = "missing" if isinstance(failure, MissingRequiredKeyError) else "invalid"
                config_validation_failures.labels(kind=kind).inc()
            error = ConfigValidationError(report.failures)
            logger.error(
                "configuration_validation_failed",
                missing_keys=error.missing_keys,
                invalid_keys=error.invalid_keys
            )
            raise error

        logger.debug("configuration_validation_passed", checked=len(report.checked_keys))
        return report


# Reusable validators

def is_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value < 65536


def is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def min_length(length: int) -> Validator:
    def check(value: Any) -> bool:
        return isinstance(value, str) and len(value) >= length
    return check


def one_of(*choices: Any) -> Validator:
    allowed = set(choices)

    def check(value: Any) -> bool:
        return value in allowed
    return check


def matches(pattern: str) -> Validator:
    compiled = re.compile(pattern)

    def check(value: Any) -> bool:
        return isinstance(value, str) and compiled.fullmatch(value) is not None
    return check
