"""
Overlay Watcher
Re-applies overlays when their files change on disk while the process is live
"""

from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .overlays import is_overlay_file
from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.reload")


class OverlayChangeHandler(FileSystemEventHandler):
    """Forwards create/modify/move events on overlay files to ``on_change``"""

    def __init__(self, environment: str, on_change: Callable[[str], None]):
        super().__init__()
        self.environment = environment
        self.on_change = on_change

    def _dispatch_path(self, path: str) -> None:
        if not path or not is_overlay_file(Path(path), self.environment):
            return
        filename = Path(path).name
        logger.info("overlay_file_changed", filename=filename)
        try:
            self.on_change(filename)
        except Exception as e:
            # Runs on the observer thread; an escaping error would kill it
            logger.error("overlay_reload_failed", filename=filename, error=str(e), exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch_path(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch_path(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._dispatch_path(getattr(event, 'dest_path', ''))


class OverlayWatcher:
    """Owns the watchdog observer for one overlay directory"""

    def __init__(self, config_dir: Path, environment: str, on_change: Callable[[str], None]):
        self.config_dir = Path(config_dir)
        self.handler = OverlayChangeHandler(environment, on_change)
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        """Start watching; returns False when the directory does not exist"""
        if self._observer is not None:
            return True
        if not self.config_dir.is_dir():
            logger.info("overlay_watch_skipped", config_dir=str(self.config_dir))
            return False

        observer = Observer()
        observer.schedule(self.handler, str(self.config_dir), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("overlay_watch_started", config_dir=str(self.config_dir))
        return True

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("overlay_watch_stopped", config_dir=str(self.config_dir))
