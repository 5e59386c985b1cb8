# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Least-recently-used caches for completions and file interactions."""

import logging
import re
from collections import OrderedDict
from typing import Generic, Iterator, Optional, TypeVar, Union

from victor_fim.completion.protocol import ContextWindow

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

SUFFIX_SEPARATOR = " #### "
_WHITESPACE = re.compile(r"\s+")


class _Missing:
    """Marker for a cache miss, distinct from a cached ``None``."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class LRUCache(Generic[K, V]):
    """Capacity-bounded mapping that evicts the least recently used key.

    Both reads and writes promote a key to most recently used.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._data: "OrderedDict[K, V]" = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K) -> Union[V, _Missing]:
        if key not in self._data:
            return MISSING
        self._data.move_to_end(key)
        return self._data[key]

    def peek(self, key: K) -> Union[V, _Missing]:
        """Read without changing recency."""
        return self._data.get(key, MISSING)

    def set(self, key: K, value: V) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self._capacity:
            evicted, _ = self._data.popitem(last=False)
            logger.debug(f"Evicted least recently used key: {evicted!r}")
        self._data[key] = value

    def delete(self, key: K) -> bool:
        if key in self._data:
            del self._data[key]
            return True
        return False

    def clear(self) -> None:
        self._data.clear()

    def items(self) -> list[tuple[K, V]]:
        """Entries from least to most recently used."""
        return list(self._data.items())

    def keys(self) -> list[K]:
        return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._data))


def normalize_cache_text(text: str) -> str:
    """Drop line breaks and every whitespace run.

    The key is deliberately lossy: edits that only change whitespace map
    to the same cached completion.
    """
    return _WHITESPACE.sub("", text.replace("\n", ""))


def get_cache_key(window: ContextWindow) -> str:
    if window.suffix:
        return normalize_cache_text(window.prefix + SUFFIX_SEPARATOR + window.suffix)
    return normalize_cache_text(window.prefix)


class CompletionCache:
    """Completions keyed by normalized context.

    A stored ``None`` records that the backend deliberately produced
    nothing for the context; ``get`` returns ``MISSING`` on a miss.
    """

    def __init__(self, capacity: int = 50):
        self._lru: LRUCache[str, Optional[str]] = LRUCache(capacity)

    @property
    def capacity(self) -> int:
        return self._lru.capacity

    def get(self, window: ContextWindow) -> Union[Optional[str], _Missing]:
        return self._lru.get(get_cache_key(window))

    def put(self, window: ContextWindow, completion: Optional[str]) -> None:
        key = get_cache_key(window)
        self._lru.set(key, completion)
        logger.debug(f"Cached completion for key of length {len(key)}")

    def clear(self) -> None:
        self._lru.clear()

    def __contains__(self, window: object) -> bool:
        if not isinstance(window, ContextWindow):
            return False
        return get_cache_key(window) in self._lru

    def __len__(self) -> int:
        return len(self._lru)
