"""
Short-lived in-process memoization for read paths.

Entries are keyed by a string, live for a fixed number of seconds and can be
dropped early through the tags they were stored under. Mutations call
``invalidate`` with the tags of the views they affect. Expired entries are
swept whenever a new value is stored.

Each tag carries a generation counter. A value whose tags were invalidated
while it was loading is returned to its caller but not stored.
"""
import time
from collections import defaultdict
from threading import Lock
from typing import Any, Callable, Dict, Iterable, Set, Tuple

_entries: Dict[str, Tuple[float, Any]] = {}
_tags: Dict[str, Set[str]] = defaultdict(set)
_key_tags: Dict[str, Tuple[str, ...]] = {}
_generations: Dict[str, int] = defaultdict(int)
_lock = Lock()


def _drop(key: str):
    _entries.pop(key, None)
    for tag in _key_tags.pop(key, ()):
        keys = _tags.get(tag)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del _tags[tag]


def _sweep(now: float):
    for key in [k for k, (expires, _) in _entries.items() if expires <= now]:
        _drop(key)


def cached(key: str, loader: Callable[[], Any], ttl: float, tags: Iterable[str] = ()) -> Any:
    tags = tuple(tags)
    with _lock:
        entry = _entries.get(key)
        if entry is not None and entry[0] > time.monotonic():
            return entry[1]
        seen = {tag: _generations[tag] for tag in tags}

    value = loader()

    with _lock:
        if any(_generations[tag] != generation for tag, generation in seen.items()):
            return value
        now = time.monotonic()
        _sweep(now)
        _drop(key)
        _entries[key] = (now + ttl, value)
        _key_tags[key] = tags
        for tag in tags:
            _tags[tag].add(key)
    return value


def invalidate(*tags: str):
    with _lock:
        for tag in tags:
            _generations[tag] += 1
            for key in list(_tags.get(tag, ())):
                _drop(key)


def clear():
    with _lock:
        _entries.clear()
        _tags.clear()
        _key_tags.clear()
