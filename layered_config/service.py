"""
Configuration Service
Composition root: loads ranked sources, establishes the cipher, applies
overlays, validates, arms live reload and exposes the read/write surface
collaborators use.
"""

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .cipher import KeyMaterialProvider, SecretCipher
from .contracts import (
    ChangeEvent,
    ChangeRecord,
    ConfigInitializationError,
    ServiceState,
    Transformer,
    Validator,
)
from .environment import DEFAULT_BINDINGS, EnvBinding, EnvironmentSource
from .journal import ChangeJournal
from .metrics import config_initialize_duration, config_ready
from .overlays import MappingSource, OverlayLoader, OverlayReport, discover_sources
from .reload import OverlayWatcher
from .settings import ConfigServiceSettings
from .store import KeyStore
from .utils.logging import get_safe_logger
from .validation import ValidationPipeline, ValidationReport
from .watch import Subscription

logger = get_safe_logger("layered_config.service")

_IN_PROGRESS = (ServiceState.LOADING, ServiceState.VALIDATING)


class ConfigService:
    """
    Layered secure configuration service.

    Construct one per process and hand it to collaborators. ``initialize()``
    must be awaited before the service is treated as ready; reads before that
    work but may not reflect overlay values yet.

    Example:
        service = ConfigService(bindings=[EnvBinding("db.password", "DB_PASSWORD", sensitive=True)])
        service.require("db.password")
        await service.initialize()
        password = service.get("db.password")
    """

    def __init__(self,
                 settings: Optional[ConfigServiceSettings] = None,
                 *,
                 bindings: Optional[Sequence[EnvBinding]] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 defaults: Optional[Mapping[str, Any]] = None):
        self.settings = settings or ConfigServiceSettings()
        self._bindings: List[EnvBinding] = list(DEFAULT_BINDINGS if bindings is None else bindings)
        self._environ = environ
        self._defaults: List[MappingSource] = []
        if defaults:
            self.register_defaults(defaults)

        self.journal = ChangeJournal(self.settings.history_capacity)
        self.store = KeyStore(journal=self.journal)
        self.bus = self.store.bus
        self.validation = ValidationPipeline(self.store)
        self.overlays = OverlayLoader(self.store)

        self.environment: Optional[str] = None
        self.key_origin: Optional[str] = None
        self._state = ServiceState.UNINITIALIZED
        self._failure: Optional[BaseException] = None
        self._watcher: Optional[OverlayWatcher] = None

    # Lifecycle

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ServiceState.READY

    def _transition(self, state: ServiceState) -> None:
        logger.debug("configuration_state_changed", previous=self._state.value, state=state.value)
        self._state = state

    async def initialize(self) -> 'ConfigService':
        """
        Load, validate and arm the configuration.

        A second call once ready is a no-op.

        Raises:
            ConfigInitializationError: Initialization is already running, failed
                earlier (use ``reset()``), or fails now; the cause is chained
        """
        if self._state == ServiceState.READY:
            return self
        if self._state in _IN_PROGRESS:
            raise ConfigInitializationError("Configuration initialization already in progress")
        if self._state == ServiceState.FAILED:
            raise ConfigInitializationError(
                "Configuration initialization failed earlier; call reset() to retry"
            ) from self._failure

        start = time.perf_counter()
        self._transition(ServiceState.LOADING)
        try:
            self._load()
            self._transition(ServiceState.VALIDATING)
            self.validation.validate_all()
        except Exception as e:
            failed_in = self._state
            self._failure = e
            self._transition(ServiceState.FAILED)
            config_ready.set(0)
            logger.error(
                "configuration_initialization_failed",
                state=failed_in.value,
                error_type=type(e).__name__,
                error=str(e)
            )
            raise ConfigInitializationError(
                f"Configuration initialization failed while {failed_in.value}: {e}",
                details={"state": failed_in.value, "cause": type(e).__name__},
            ) from e
        finally:
            config_initialize_duration.observe(time.perf_counter() - start)

        self.store.armed = True
        self._arm_watcher()
        self._transition(ServiceState.READY)
        config_ready.set(1)

        logger.info(
            "configuration_initialized",
            environment=self.environment,
            keys=len(self.store),
            key_origin=self.key_origin,
            watching=self._watcher is not None
        )
        return self

    def _load(self) -> None:
        environment_source = EnvironmentSource(self._bindings, self._environ)
        env_values = environment_source.resolve()
        self.environment = str(env_values.get(self.settings.environment_key) or "development")

        injected = self.settings.encryption_key.get_secret_value() if self.settings.encryption_key else None
        provider = KeyMaterialProvider(
            self.settings.key_file,
            injected_key=injected,
            production=self.settings.is_production(self.environment),
        )
        self.store.use_cipher(SecretCipher.from_provider(provider))
        self.key_origin = provider.origin

        for key in environment_source.sensitive_keys():
            self.store.mark_sensitive(key)

        if self._defaults:
            self.overlays.apply(self._defaults, origin="defaults")

        for key, value in env_values.items():
            if value is None:
                continue
            self.store.set(key, value, validate=False, source="environment")

        sources = discover_sources(self.settings.config_dir, self.environment)
        self.overlays.apply(sources, origin="overlay")

    def _arm_watcher(self) -> None:
        if not self.settings.should_watch(self.environment or ""):
            return
        watcher = OverlayWatcher(self.settings.config_dir, self.environment, self._on_overlay_change)
        try:
            started = watcher.start()
        except OSError as e:
            logger.warning("overlay_watch_unavailable", config_dir=str(self.settings.config_dir), error=str(e))
            return
        if started:
            self._watcher = watcher

    def _on_overlay_change(self, filename: str) -> None:
        self.reload_overlays(trigger=filename)

    def _stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def reload_overlays(self, trigger: Optional[str] = None) -> OverlayReport:
        """
        Re-apply overlay files on top of the live store.

        Only changed values are written; values rejected by their validator
        keep their previous value.
        """
        if self._state != ServiceState.READY:
            logger.debug("configuration_reload_skipped", state=self._state.value, trigger=trigger)
            return OverlayReport()

        sources = discover_sources(self.settings.config_dir, self.environment)
        report = self.overlays.apply(sources, validate=True, skip_unchanged=True, origin="reload")
        logger.info(
            "configuration_reloaded",
            trigger=trigger,
            keys_changed=len(report.keys),
            rejected=report.rejected,
            skipped=report.skipped
        )
        return report

    async def reset(self) -> 'ConfigService':
        """Clear every value and the history, then initialize again"""
        if self._state in _IN_PROGRESS:
            raise ConfigInitializationError("Cannot reset while initialization is in progress")

        self._stop_watcher()
        self.store.armed = False
        with self.store.lock:
            self.store.clear()
            self.journal.clear()
        self._failure = None
        self._transition(ServiceState.UNINITIALIZED)
        config_ready.set(0)
        logger.info("configuration_reset")
        return await self.initialize()

    def close(self) -> None:
        """Stop live reload; values stay readable"""
        self._stop_watcher()

    # Registration

    def register_defaults(self, defaults: Mapping[str, Any], name: str = "defaults") -> 'ConfigService':
        """Add programmatic defaults; they rank below environment and overlays on the next load"""
        self._defaults.append(MappingSource(name, defaults))
        return self

    def add_binding(self, binding: EnvBinding) -> 'ConfigService':
        self._bindings = [b for b in self._bindings if b.key != binding.key]
        self._bindings.append(binding)
        return self

    def add_validator(self, key: str, validator: Validator) -> 'ConfigService':
        self.store.add_validator(key, validator)
        return self

    def add_transformer(self, key: str, transformer: Transformer) -> 'ConfigService':
        self.store.add_transformer(key, transformer)
        return self

    def mark_sensitive(self, key: str) -> 'ConfigService':
        self.store.mark_sensitive(key)
        return self

    def require(self, key: str, validator: Optional[Validator] = None) -> 'ConfigService':
        self.validation.require_key(key, validator)
        return self

    # Read / write surface

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    def has(self, key: str) -> bool:
        return self.store.has(key)

    def set(self,
            key: str,
            value: Any,
            *,
            transform: bool = True,
            validate: bool = True,
            notify: bool = True,
            sensitive: Optional[bool] = None) -> 'ConfigService':
        self.store.set(
            key,
            value,
            transform=transform,
            validate=validate,
            notify=notify,
            sensitive=sensitive,
        )
        return self

    def validate_all(self) -> ValidationReport:
        return self.validation.validate_all()

    def watch(self, key: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        return self.bus.watch(key, callback)

    def watch_all(self, callback: Callable[[ChangeEvent], None]) -> Subscription:
        return self.bus.watch_all(callback)

    def history(self, key: Optional[str] = None) -> List[ChangeRecord]:
        return self.journal.history(key)

    def to_object(self, include_sensitive: bool = False) -> Dict[str, Any]:
        return self.store.to_object(include_sensitive)

    # Diagnostics

    def summary(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "environment": self.environment,
            "total_keys": len(self.store),
            "validators": len(self.store.validated_keys()),
            "transformers": len(self.store.transformed_keys()),
            "required": len(self.store.required_keys()),
            "watchers": self.bus.watcher_count(),
            "history_entries": len(self.journal),
            "key_origin": self.key_origin,
            "watching_overlays": self._watcher is not None,
            "is_initialized": self.is_ready,
        }

    def debug_dump(self) -> str:
        """Redacted JSON dump of every key, safe to log"""
        return json.dumps(self.to_object(include_sensitive=False), indent=2, sort_keys=True, default=str)
