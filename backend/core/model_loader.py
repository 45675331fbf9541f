"""Model format dispatch and a reference-counted model cache.

Loaders only check that a payload looks like its declared format. Geometry is
never parsed here; the browser viewer does that.
"""

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from backend.config import settings
from backend.core.exceptions import AssetError

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"
FBX_BINARY_MAGIC = b"Kaydara FBX Binary"
FBX_ASCII_MARKERS = (b"FBXHeaderExtension", b"; FBX")


class ModelLoadError(AssetError):
    """Raised when a payload cannot be loaded as the requested format."""

    code = "INVALID_MODEL"


class ModelFormat(str, Enum):
    """Closed set of model formats the viewer can load."""

    GLTF = "gltf"
    FBX = "fbx"
    OBJ = "obj"


# Asset type (file extension) to loader format
FORMAT_BY_TYPE: Dict[str, ModelFormat] = {
    "glb": ModelFormat.GLTF,
    "gltf": ModelFormat.GLTF,
    "fbx": ModelFormat.FBX,
    "obj": ModelFormat.OBJ,
}

MEDIA_TYPES: Dict[str, str] = {
    "glb": "model/gltf-binary",
    "gltf": "model/gltf+json",
    "fbx": "application/octet-stream",
    "obj": "model/obj",
}


def format_for_type(asset_type: str) -> ModelFormat:
    """Map an asset type to its loader format.

    Raises:
        ModelLoadError: If the type has no loader
    """
    try:
        return FORMAT_BY_TYPE[asset_type.lower()]
    except (KeyError, AttributeError) as e:
        raise ModelLoadError(f"Unsupported model type: {asset_type}") from e


@dataclass(frozen=True)
class LoadedModel:
    """A model payload checked against its format."""

    url: str
    format: ModelFormat
    media_type: str
    content: bytes
    binary: bool

    @property
    def size(self) -> int:
        return len(self.content)


def _load_gltf(url: str, content: bytes) -> LoadedModel:
    if content[:4] == GLB_MAGIC:
        return LoadedModel(url, ModelFormat.GLTF, MEDIA_TYPES["glb"], content, binary=True)
    try:
        document = json.loads(content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ModelLoadError(f"Not a glTF document: {url}") from e
    if not isinstance(document, dict) or "asset" not in document:
        raise ModelLoadError(f"glTF document has no asset header: {url}")
    return LoadedModel(url, ModelFormat.GLTF, MEDIA_TYPES["gltf"], content, binary=False)


def _load_fbx(url: str, content: bytes) -> LoadedModel:
    if content.startswith(FBX_BINARY_MAGIC):
        return LoadedModel(url, ModelFormat.FBX, MEDIA_TYPES["fbx"], content, binary=True)
    head = content[:4096]
    if any(marker in head for marker in FBX_ASCII_MARKERS):
        return LoadedModel(url, ModelFormat.FBX, MEDIA_TYPES["fbx"], content, binary=False)
    raise ModelLoadError(f"Not an FBX file: {url}")


def _load_obj(url: str, content: bytes) -> LoadedModel:
    try:
        content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ModelLoadError(f"OBJ file is not text: {url}") from e
    return LoadedModel(url, ModelFormat.OBJ, MEDIA_TYPES["obj"], content, binary=False)


LOADERS: Dict[ModelFormat, Callable[[str, bytes], LoadedModel]] = {
    ModelFormat.GLTF: _load_gltf,
    ModelFormat.FBX: _load_fbx,
    ModelFormat.OBJ: _load_obj,
}


def load_model(url: str, fmt: ModelFormat, fetch: Callable[[str], bytes]) -> LoadedModel:
    """Fetch a model and check it with the loader registered for its format.

    Args:
        url: Blob URL of the model
        fmt: Loader format
        fetch: Callable returning the raw bytes for the URL

    Returns:
        LoadedModel: The checked payload

    Raises:
        ModelLoadError: If the payload does not match the format
    """
    loader = LOADERS.get(fmt)
    if loader is None:
        raise ModelLoadError(f"No loader registered for {fmt}")
    return loader(url, fetch(url))


@dataclass
class _CacheEntry:
    model: LoadedModel
    refs: int = 0


class ModelCache:
    """Cache of loaded models keyed by blob URL.

    Each entry carries an explicit reference count. An entry evicted or
    replaced while still referenced is retired: its holders keep using it and
    it is disposed when the last reference is released.

    Unreferenced entries are kept in least-recently-used order and trimmed
    whenever the cache holds more than `max_entries` models or more than
    `max_bytes` of model content. Referenced entries are never trimmed.

    Args:
        max_entries: Maximum number of cached models (None for no limit)
        max_bytes: Maximum total content size in bytes (None for no limit)
        on_dispose: Called with each model once it leaves the cache for good
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        max_bytes: Optional[int] = None,
        on_dispose: Optional[Callable[[LoadedModel], None]] = None,
    ):
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._retired: List[_CacheEntry] = []
        self._size = 0
        self._lock = threading.Lock()
        self._on_dispose = on_dispose

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._entries

    @property
    def size(self) -> int:
        """Total content size in bytes of the cached models."""
        with self._lock:
            return self._size

    def get(self, url: str) -> Optional[LoadedModel]:
        with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return None
            self._entries.move_to_end(url)
            return entry.model

    def put(self, url: str, model: LoadedModel) -> None:
        """Store a model, retiring whatever entry the URL held before."""
        with self._lock:
            self._retire(self._pop(url))
            self._insert(url, _CacheEntry(model))
            self._trim()

    def evict(self, url: str) -> bool:
        """Drop a URL from the cache.

        Returns:
            bool: True if an entry was present
        """
        with self._lock:
            entry = self._pop(url)
            self._retire(entry)
            return entry is not None

    def acquire(self, url: str, loader: Callable[[], LoadedModel]) -> LoadedModel:
        """Return the cached model for a URL, loading it on a miss, and take a reference."""
        with self._lock:
            entry = self._entries.get(url)
            if entry is not None:
                entry.refs += 1
                self._entries.move_to_end(url)
                return entry.model

        model = loader()

        with self._lock:
            # Another request may have loaded the same URL meanwhile
            entry = self._entries.get(url)
            if entry is None:
                entry = _CacheEntry(model)
                self._insert(url, entry)
            else:
                self._entries.move_to_end(url)
            entry.refs += 1
            self._trim()
            return entry.model

    def release(self, url: str, model: LoadedModel) -> None:
        """Drop one reference taken by acquire."""
        with self._lock:
            entry = self._entries.get(url)
            if entry is not None and entry.model is model:
                entry.refs = max(entry.refs - 1, 0)
                if entry.refs == 0:
                    self._trim()
                return

            for retired in self._retired:
                if retired.model is model:
                    retired.refs -= 1
                    if retired.refs <= 0:
                        self._retired.remove(retired)
                        self._dispose(retired.model)
                    return

        logger.warning(f"Release of unknown model {url}")

    def refcount(self, url: str) -> int:
        with self._lock:
            entry = self._entries.get(url)
            return entry.refs if entry else 0

    def clear(self) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self._size = 0
            for entry in entries:
                self._retire(entry)

    def _insert(self, url: str, entry: _CacheEntry) -> None:
        # Caller holds the lock
        self._entries[url] = entry
        self._size += entry.model.size

    def _pop(self, url: str) -> Optional[_CacheEntry]:
        # Caller holds the lock
        entry = self._entries.pop(url, None)
        if entry is not None:
            self._size -= entry.model.size
        return entry

    def _over_budget(self) -> bool:
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            return True
        return self.max_bytes is not None and self._size > self.max_bytes

    def _trim(self) -> None:
        # Caller holds the lock; oldest unreferenced entries go first
        if not self._over_budget():
            return
        for url in [url for url, entry in self._entries.items() if entry.refs == 0]:
            self._retire(self._pop(url))
            if not self._over_budget():
                return

    def _retire(self, entry: Optional[_CacheEntry]) -> None:
        # Caller holds the lock
        if entry is None:
            return
        if entry.refs > 0:
            self._retired.append(entry)
        else:
            self._dispose(entry.model)

    def _dispose(self, model: LoadedModel) -> None:
        logger.debug(f"Disposing cached model {model.url}")
        if self._on_dispose is not None:
            self._on_dispose(model)


# Global model cache
_model_cache: ModelCache | None = None


def get_model_cache() -> ModelCache:
    """Get the process-wide model cache (singleton)."""
    global _model_cache
    if _model_cache is None:
        _model_cache = ModelCache(
            max_entries=settings.model_cache_max_entries,
            max_bytes=settings.model_cache_max_bytes,
        )
    return _model_cache
