from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

# One lock per user / placement key; serializes read-modify-write cycles
# within this process. Rows are also loaded FOR UPDATE where supported.
_key_locks: Dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


def _get_lock(key: str) -> threading.Lock:
	with _registry_lock:
		lock = _key_locks.get(key)
		if lock is None:
			lock = threading.Lock()
			_key_locks[key] = lock
		return lock


@contextmanager
def keyed_lock(key: str) -> Iterator[None]:
	lock = _get_lock(key)
	with lock:
		yield


def user_key(user_id: str) -> str:
	return f"user:{user_id}"


def assessment_key(placement_id: str) -> str:
	return f"assessment:{placement_id}"


def discard_lock(key: str) -> None:
	# A caller that fetched the lock but has not acquired it yet may end up on
	# a different lock than later callers. Only used for finished placements,
	# which reject every further submit under either lock.
	with _registry_lock:
		lock = _key_locks.get(key)
		if lock is not None and not lock.locked():
			del _key_locks[key]
