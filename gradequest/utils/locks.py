"""Per-key asyncio locks that disappear once nobody holds or awaits them"""
import asyncio
import weakref


class KeyedLocks:
    """
    Map of key -> asyncio.Lock backed by weak references

    A lock stays in the map while a coroutine holds or waits on it, so callers
    sharing a key always serialize. Once released and unreferenced it is
    dropped, keeping long-lived services from growing one entry per user.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    def __len__(self) -> int:
        return len(self._locks)
