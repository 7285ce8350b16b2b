import threading


class KeyedLocks:
    """Registry of re-entrant locks, one per key.

    Locks live for the life of the process. They serialize writers inside
    one process only; cross-process exclusion for submissions comes from
    the lease columns in the database.
    """

    def __init__(self):
        self._locks = {}
        self._registry_lock = threading.Lock()

    def get(self, key) -> threading.RLock:
        with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = threading.RLock()
            return self._locks[key]

    def __len__(self):
        with self._registry_lock:
            return len(self._locks)


_user_locks = KeyedLocks()


def get_user_lock(user_id) -> threading.RLock:
    """Get or create the writer lock for a user's aggregate state."""
    return _user_locks.get(user_id)
