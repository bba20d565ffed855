"""
Academy Progress - Local Storage
Synchronous key/value cache on the device plus the codec for its documents.
"""

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional, List, Type, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel, ValidationError as SchemaError

from .errors import LocalStorageError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================
# KEYS
# ============================================

def video_progress_key(user_id: str, course_id: str, lesson_id: str) -> str:
    return f"video_progress:{user_id}:{course_id}:{lesson_id}"


def video_progress_prefix(user_id: str, course_id: str) -> str:
    return f"video_progress:{user_id}:{course_id}:"


def user_progress_key(user_id: str, course_id: str) -> str:
    return f"user_progress:{user_id}:{course_id}"


def remote_partition_key(user_id: str) -> str:
    return f"USER#{user_id}"


def remote_lesson_sort_key(course_id: str, lesson_id: str) -> str:
    return f"COURSE#{course_id}#LESSON#{lesson_id}"


def remote_progress_sort_key(course_id: str) -> str:
    return f"COURSE#{course_id}#PROGRESS"


# ============================================
# CODEC
# ============================================

class ProgressCodec:
    """Converts models to JSON-safe documents and back.

    Dates and datetimes become ISO strings on the way out and are parsed back
    by pydantic on the way in.
    """

    @staticmethod
    def encode(model: BaseModel) -> dict:
        return model.model_dump(mode="json")

    @staticmethod
    def decode(model_cls: Type[ModelT], document: Any) -> ModelT:
        try:
            return model_cls.model_validate(document)
        except SchemaError as e:
            raise LocalStorageError(
                f"Stored document is not a valid {model_cls.__name__}",
                details=str(e)
            ) from e

    @classmethod
    def encode_many(cls, models: List[BaseModel]) -> List[dict]:
        return [cls.encode(model) for model in models]

    @classmethod
    def decode_many(cls, model_cls: Type[ModelT], documents: Any) -> List[ModelT]:
        if not documents:
            return []
        if not isinstance(documents, list):
            raise LocalStorageError(f"Expected a list of {model_cls.__name__} documents")
        return [cls.decode(model_cls, document) for document in documents]


# ============================================
# STORES
# ============================================

class LocalStore(ABC):
    """Device-local cache. Reads and writes complete immediately."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        ...


class MemoryStore(LocalStore):
    """In-process store. Values are deep-copied so callers never share state with it."""

    def __init__(self):
        self._data = {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(key for key in self._data if key.startswith(prefix))


class JsonFileStore(LocalStore):
    """One JSON document per key under a directory."""

    SUFFIX = ".json"

    def __init__(self, directory: str):
        self.directory = directory
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise LocalStorageError(f"Cannot create store directory {directory}", details=str(e)) from e

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, quote(key, safe="") + self.SUFFIX)

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise LocalStorageError(f"Cannot read {key}", details=str(e)) from e

    def put(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise LocalStorageError(f"Cannot write {key}", details=str(e)) from e

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LocalStorageError(f"Cannot delete {key}", details=str(e)) from e

    def keys(self, prefix: str = "") -> List[str]:
        try:
            filenames = os.listdir(self.directory)
        except OSError as e:
            raise LocalStorageError(f"Cannot list {self.directory}", details=str(e)) from e

        keys = [
            unquote(name[:-len(self.SUFFIX)])
            for name in filenames
            if name.endswith(self.SUFFIX)
        ]
        return sorted(key for key in keys if key.startswith(prefix))
