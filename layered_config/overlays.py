"""
Overlay Loader
Applies ranked configuration sources to the KeyStore; later sources win per key.
Nested mappings are flattened into dotted keys, lists stay opaque leaves.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import yaml

from .contracts import InvalidValueError, OverlaySourceError
from .metrics import config_overlay_errors
from .store import KeyStore
from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.overlays")

SUPPORTED_EXTENSIONS = (".json", ".yaml", ".yml")


def overlay_stems(environment: str) -> List[str]:
    """Overlay names in ascending priority: default, the active environment, local"""
    stems = []
    for stem in ("default", environment, "local"):
        if stem and stem not in stems:
            stems.append(stem)
    return stems


def flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into dotted keys; lists and scalars are leaves"""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


class MappingSource:
    """In-memory source, used for programmatic defaults"""

    def __init__(self, name: str, data: Mapping[str, Any]):
        self.name = name
        self.data = data

    def load(self) -> Mapping[str, Any]:
        return self.data


class FileSource:
    """JSON or YAML overlay file"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = self.path.name

    def load(self) -> Mapping[str, Any]:
        """
        Read and parse the file.

        Raises:
            OverlaySourceError: Unreadable file, parse error, or a non-mapping root
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                if self.path.suffix in ('.yaml', '.yml'):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise OverlaySourceError(str(self.path), str(e)) from e

        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise OverlaySourceError(str(self.path), f"root must be a mapping, got {type(data).__name__}")
        return data


def discover_sources(config_dir: Path, environment: str) -> List[FileSource]:
    """Existing overlay files for ``environment`` in priority order"""
    config_dir = Path(config_dir)
    sources = []
    for stem in overlay_stems(environment):
        for extension in SUPPORTED_EXTENSIONS:
            path = config_dir / f"{stem}{extension}"
            if path.is_file():
                sources.append(FileSource(path))
    return sources


def is_overlay_file(path: Path, environment: str) -> bool:
    path = Path(path)
    return path.suffix in SUPPORTED_EXTENSIONS and path.stem in overlay_stems(environment)


@dataclass
class OverlayReport:
    """What an overlay pass did"""

    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    keys: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)


class OverlayLoader:
    """Merges sources into a KeyStore in order"""

    def __init__(self, store: KeyStore):
        self.store = store

    def _read(self, sources: Iterable[Any], report: OverlayReport) -> Dict[str, Tuple[str, Any]]:
        """Merged view of every readable source: key -> (winning source, value)"""
        merged: Dict[str, Tuple[str, Any]] = {}
        for source in sources:
            try:
                data = source.load()
            except OverlaySourceError as e:
                config_overlay_errors.inc()
                logger.warning("overlay_source_unreadable", source=source.name, error=e.message)
                report.skipped.append(source.name)
                continue
            for key, value in flatten(data).items():
                merged[key] = (source.name, value)
            report.applied.append(source.name)
        return merged

    def apply(self,
              sources: Sequence[Any],
              *,
              validate: bool = False,
              skip_unchanged: bool = False,
              origin: str = "overlay") -> OverlayReport:
        """
        Apply ``sources`` in order.

        Sources are read and merged first, so each key is written at most once
        with the value of the last source that defines it. The writes then
        happen as one critical section on the store. Unreadable sources are
        skipped, rejected keys keep their previous value.

        Args:
            sources: Objects with ``name`` and ``load()``
            validate: Run key validators on each write
            skip_unchanged: Leave keys whose value is already current untouched
            origin: Prefix of the change source label
        """
        report = OverlayReport()
        merged = self._read(sources, report)

        with self.store.lock:
            for key, (name, value) in merged.items():
                if skip_unchanged and self.store.has(key) and self.store.get(key) == value:
                    continue
                try:
                    self.store.set(key, value, validate=validate, source=f"{origin}:{name}")
                except InvalidValueError as e:
                    logger.warning("overlay_value_rejected", source=name, key=key, error=e.message)
                    report.rejected.append(key)
                    continue
                except TypeError as e:
                    logger.warning("overlay_value_unsupported", source=name, key=key, error=str(e))
                    report.rejected.append(key)
                    continue
                report.keys.append(key)

        logger.info(
            "overlay_applied",
            applied=report.applied,
            skipped=report.skipped,
            keys_written=len(report.keys),
            rejected=len(report.rejected)
        )
        return report
