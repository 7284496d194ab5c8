"""
Key Store for layered configuration
Dotted-key value storage with per-key rules, transparent encryption of
sensitive values, change journaling and watcher notification.
"""

import copy
import json
import secrets
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .cipher import KEY_BYTES, SecretCipher
from .contracts import (
    REDACTED,
    ChangeEvent,
    ChangeRecord,
    ConfigEntry,
    ConfigValue,
    DecryptionError,
    InvalidValueError,
    KeyRules,
    Transformer,
    Validator,
    ValueKind,
)
from .journal import ChangeJournal
from .metrics import config_changes, config_decrypt_failures
from .utils.logging import get_safe_logger
from .watch import WatchBus

logger = get_safe_logger("layered_config.store")

_MISSING = object()


class KeyStore:
    """
    Ordered mapping from dotted keys to values.

    Every mutation (transform, validate, store, journal, notify) runs under a
    single re-entrant lock, so writers on other threads (file watchers) see
    atomic per-key writes. Notifications are only delivered once the store is
    armed, which the service does when it reaches the ready state.
    """

    def __init__(self,
                 cipher: Optional[SecretCipher] = None,
                 journal: Optional[ChangeJournal] = None,
                 bus: Optional[WatchBus] = None):
        self._lock = threading.RLock()
        self._cipher = cipher or SecretCipher(secrets.token_bytes(KEY_BYTES))
        self.journal = journal if journal is not None else ChangeJournal()
        self.bus = bus if bus is not None else WatchBus(self._lock)
        self._values: Dict[str, Any] = {}
        self._rules: Dict[str, KeyRules] = {}
        self.armed = False

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # Rules

    def _rule(self, key: str) -> KeyRules:
        rules = self._rules.get(key)
        if rules is None:
            rules = self._rules[key] = KeyRules()
        return rules

    def rules(self, key: str) -> KeyRules:
        with self._lock:
            rules = self._rules.get(key)
            return copy.copy(rules) if rules else KeyRules()

    def add_validator(self, key: str, validator: Validator) -> 'KeyStore':
        with self._lock:
            self._rule(key).validator = validator
        return self

    def add_transformer(self, key: str, transformer: Transformer) -> 'KeyStore':
        with self._lock:
            self._rule(key).transformer = transformer
        return self

    def mark_required(self, key: str) -> 'KeyStore':
        with self._lock:
            self._rule(key).required = True
        return self

    def mark_sensitive(self, key: str) -> 'KeyStore':
        """
        Mark ``key`` sensitive for good.

        An existing plain value is sealed in place, and so is any stored
        parent whose nested value contains ``key``.
        """
        with self._lock:
            self._seal_in_place(key)
            parts = key.split(".")
            for i in range(1, len(parts)):
                prefix = ".".join(parts[:i])
                if prefix in self._values:
                    self._seal_in_place(prefix)
        return self

    def _seal_in_place(self, key: str) -> None:
        rules = self._rule(key)
        if rules.sensitive:
            return
        rules.sensitive = True
        if key in self._values:
            self._values[key] = self._seal(self._values[key])

    def is_sensitive(self, key: str) -> bool:
        rules = self._rules.get(key)
        return bool(rules and rules.sensitive)

    def _covers_sensitive(self, key: str) -> bool:
        """True when a sensitive key lives inside the nested value stored at ``key``"""
        prefix = key + "."
        return any(k.startswith(prefix) and rules.sensitive for k, rules in self._rules.items())

    def required_keys(self) -> List[str]:
        with self._lock:
            return [key for key, rules in self._rules.items() if rules.required]

    def validated_keys(self) -> List[str]:
        with self._lock:
            return [key for key, rules in self._rules.items() if rules.validator is not None]

    def transformed_keys(self) -> List[str]:
        with self._lock:
            return [key for key, rules in self._rules.items() if rules.transformer is not None]

    # Encryption

    def use_cipher(self, cipher: SecretCipher) -> None:
        """Swap the cipher, re-sealing any sensitive values already stored"""
        with self._lock:
            plain = {}
            for key, stored in self._values.items():
                if self.is_sensitive(key):
                    plain[key] = self._unseal(stored)
            self._cipher = cipher
            for key, value in plain.items():
                self._values[key] = self._seal(value)

    def _seal(self, value: Any) -> Any:
        if value is None:
            return None
        return self._cipher.encrypt(json.dumps(value))

    def _unseal(self, stored: Any) -> Any:
        if stored is None:
            return None
        if not isinstance(stored, str):
            raise DecryptionError(f"Stored value is not an envelope: {type(stored).__name__}")
        try:
            return json.loads(self._cipher.decrypt(stored))
        except (TypeError, ValueError) as e:
            raise DecryptionError(f"Stored value is not a valid envelope: {type(e).__name__}") from e

    def _read(self, key: str) -> Any:
        stored = self._values[key]
        if self.is_sensitive(key):
            return self._unseal(stored)
        return stored

    def _read_or_missing(self, key: str) -> Any:
        if key not in self._values:
            return _MISSING
        try:
            return self._read(key)
        except DecryptionError:
            return _MISSING

    # Writes

    def set(self,
            key: str,
            value: Any,
            *,
            transform: bool = True,
            validate: bool = True,
            notify: bool = True,
            sensitive: Optional[bool] = None,
            source: str = "set") -> 'KeyStore':
        """
        Set a configuration value.

        Args:
            key: Dotted configuration key
            value: New value; replaces whatever is stored (no deep merge)
            transform: Apply the key's transformer first
            validate: Run the key's validator on the transformed value
            notify: Signal watchers after commit (only once the store is armed)
            sensitive: Mark the key sensitive; cannot be switched off again
            source: Origin label for the journal, watchers and metrics

        Raises:
            InvalidValueError: The validator rejected the value; nothing changed
        """
        if not key:
            raise ValueError("Configuration key must be a non-empty string")

        with self._lock:
            rules = self._rules.get(key)

            if transform and rules and rules.transformer:
                try:
                    value = rules.transformer(value)
                except Exception as e:
                    logger.warning("configuration_value_rejected", key=key, reason="transformer_failed", source=source)
                    raise InvalidValueError(key, reason=f"transformer failed: {e}") from e

            kind = ConfigValue.of(value).kind

            if validate and rules and rules.validator:
                try:
                    accepted = bool(rules.validator(value))
                except Exception as e:
                    logger.warning("configuration_value_rejected", key=key, reason="validator_failed", source=source)
                    raise InvalidValueError(key, kind, reason=f"validator failed: {e}") from e
                if not accepted:
                    logger.warning("configuration_value_rejected", key=key, kind=kind.value, source=source)
                    raise InvalidValueError(key, kind)

            # Read with the old sensitivity before the flag can change
            previous = self._read_or_missing(key)
            previous = None if previous is _MISSING else previous

            if sensitive or (kind == ValueKind.NESTED and self._covers_sensitive(key)):
                self._rule(key).sensitive = True
            is_sensitive = self.is_sensitive(key)

            if kind in (ValueKind.NESTED, ValueKind.LIST):
                value = copy.deepcopy(value)

            self._values[key] = self._seal(value) if is_sensitive else value
            self._commit(key, previous, value, is_sensitive, source, notify)

        return self

    def delete(self, key: str, *, notify: bool = True, source: str = "delete") -> bool:
        """Remove a stored value; rules stay registered. Returns False if absent."""
        with self._lock:
            if key not in self._values:
                return False
            previous = self._read_or_missing(key)
            previous = None if previous is _MISSING else previous
            del self._values[key]
            self._commit(key, previous, None, self.is_sensitive(key), source, notify)
        return True

    def _commit(self, key: str, previous: Any, new: Any, is_sensitive: bool, source: str, notify: bool) -> None:
        self.journal.record(ChangeRecord(
            key=key,
            previous_value=REDACTED if is_sensitive and previous is not None else previous,
            new_value=REDACTED if is_sensitive and new is not None else new,
            source=source,
        ))
        config_changes.labels(source=source.split(":", 1)[0]).inc()
        logger.debug("configuration_value_set", key=key, sensitive=is_sensitive, source=source)

        if notify and self.armed:
            self.bus.publish(ChangeEvent(key=key, previous=previous, next=copy.deepcopy(new), source=source))

    def clear(self) -> None:
        """Drop every value; rules, journal and watchers are left alone"""
        with self._lock:
            self._values.clear()

    # Reads

    def _resolve(self, key: str, decode: bool = True) -> Tuple[bool, Any]:
        if key in self._values:
            if not decode:
                return True, None
            return True, self._read(key)

        parts = key.split(".")
        for i in range(len(parts) - 1, 0, -1):
            prefix = ".".join(parts[:i])
            if prefix not in self._values:
                continue
            node = self._read(prefix)
            for segment in parts[i:]:
                if isinstance(node, Mapping) and segment in node:
                    node = node[segment]
                else:
                    return False, None
            return True, node

        return False, None

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value by flat key or dotted path.

        Dotted paths are resolved from the longest stored prefix and stepped
        one segment at a time through nested mappings. Missing segments and
        undecryptable sensitive values yield ``default``; this never raises.
        """
        with self._lock:
            try:
                found, value = self._resolve(key)
            except DecryptionError:
                config_decrypt_failures.inc()
                logger.warning("configuration_decrypt_failed", key=key)
                return default
        if not found:
            return default
        return copy.deepcopy(value) if isinstance(value, (dict, list)) else value

    def has(self, key: str) -> bool:
        with self._lock:
            try:
                found, _ = self._resolve(key, decode=False)
            except DecryptionError:
                return False
        return found

    def entry(self, key: str, reveal: bool = False) -> Optional[ConfigEntry]:
        """Snapshot of a stored key with its rules; sensitive values redacted unless ``reveal``"""
        with self._lock:
            if key not in self._values:
                return None
            rules = self._rules.get(key) or KeyRules()
            value = self._read_or_missing(key)
            if value is _MISSING:
                value = None
            kind = ConfigValue.of(value).kind
            if rules.sensitive and not reveal and value is not None:
                value = REDACTED
            return ConfigEntry(
                key=key,
                value=copy.deepcopy(value),
                kind=kind,
                sensitive=rules.sensitive,
                required=rules.required,
                validator=rules.validator,
                transformer=rules.transformer,
            )

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._values)

    def to_object(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """Flat export; sensitive keys show as ``[ENCRYPTED]`` unless ``include_sensitive``"""
        result = {}
        with self._lock:
            for key in self._values:
                if self.is_sensitive(key) and not include_sensitive:
                    result[key] = REDACTED
                    continue
                value = self._read_or_missing(key)
                result[key] = REDACTED if value is _MISSING else copy.deepcopy(value)
        return result

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._values)
