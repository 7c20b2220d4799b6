from typing import Optional, Set


class DedupIndex:
    """Keys already emitted during a run. Only ever grows."""

    def __init__(self) -> None:
        self._keys: Set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: Optional[str]) -> bool:
        """Record ``key``; returns False when it was already seen or is empty."""
        if not key or key in self._keys:
            return False
        self._keys.add(key)
        return True
