import os
import json
import logging
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, fields
from typing import Any, Callable, Dict

from data_classes import ScanSettings

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = asdict(ScanSettings())


class SettingsStore(ABC):
    """abstract base class for the persisted settings record"""

    @abstractmethod
    def _read(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _write(self, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self) -> None:
        pass

    def __init__(self):
        self._lock = threading.RLock()

    def get(self, key: str) -> Any:
        """returns the stored value, or the default of the key if nothing is stored"""
        with self._lock:
            return self._read().get(key, DEFAULTS.get(key, ""))

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, Any]) -> None:
        """merges the values into the record in one atomic step"""
        with self._lock:
            data = self._read()
            data.update(values)
            self._write(data)

    def modify(self, key: str, func: Callable[[Any], Any]) -> Any:
        """read-modify-write of one key under the store lock, returns the new value"""
        with self._lock:
            data = self._read()
            data[key] = func(data.get(key, DEFAULTS.get(key, "")))
            self._write(data)
            return data[key]

    def load(self) -> ScanSettings:
        with self._lock:
            data = {**DEFAULTS, **self._read()}
        return ScanSettings(**{f.name: data[f.name] for f in fields(ScanSettings)})

    def ensure_defaults(self) -> None:
        """creates the record with default values, keeping anything already stored"""
        with self._lock:
            self._write({**DEFAULTS, **self._read()})


class InMemorySettingsStore(SettingsStore):
    def __init__(self, initial: Dict[str, Any] = None):
        super().__init__()
        self._data = dict(initial or {})

    def _read(self) -> Dict[str, Any]:
        return dict(self._data)

    def _write(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)

    def delete(self) -> None:
        with self._lock:
            self._data = {}


class JsonFileSettingsStore(SettingsStore):
    """Keeps the settings record in a JSON file. Writes go to a temp file that replaces the record."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".antivirus_", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self) -> None:
        with self._lock:
            if os.path.exists(self.path):
                os.remove(self.path)
