"""In-memory and JSON-file local stores."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from .base import LocalStore
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class InMemoryLocalStore(LocalStore):
    """Dictionary-backed store, used for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self) -> List[str]:
        return list(self._data.keys())

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileLocalStore(LocalStore):
    """
    Store backed by a JSON object file of string keys to string values.

    This is the shape of a browser storage export. A missing file is an empty
    store. Each write replaces the file atomically.
    """

    def __init__(self, path: Union[str, Path], encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        with open(self.path, 'r', encoding=self.encoding) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Local store file {self.path} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Local store file {self.path} must contain a JSON object")

        # Values that are not strings were exported already decoded
        return {
            str(k): v if isinstance(v, str) else json.dumps(v)
            for k, v in data.items()
            if v is not None
        }

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, 'w', encoding=self.encoding) as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        self._save(data)
        logger.debug(f"Removed {key} from {self.path}")

    def list_keys(self) -> List[str]:
        return list(self._load().keys())

    def snapshot(self) -> Dict[str, str]:
        return self._load()
