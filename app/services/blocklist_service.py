"""Blocked source identifiers"""
import logging
from typing import Callable, Iterable, List, Set

logger = logging.getLogger(__name__)

BlocklistListener = Callable[[], None]


class BlocklistManager:
    """
    Set of source identifiers rejected before any rule is evaluated.

    Every block/unblock call notifies subscribers with a payload-free
    "blocklist changed" signal, even when membership did not change.
    """

    def __init__(self):
        self._blocked: Set[str] = set()
        self._listeners: List[BlocklistListener] = []

    def subscribe(self, listener: BlocklistListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: BlocklistListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def block(self, identifier: str) -> None:
        if identifier not in self._blocked:
            self._blocked.add(identifier)
            logger.info(f"Blocked {identifier}")
        self._notify()

    def unblock(self, identifier: str) -> None:
        if identifier in self._blocked:
            self._blocked.discard(identifier)
            logger.info(f"Unblocked {identifier}")
        self._notify()

    def is_blocked(self, identifier: str) -> bool:
        return identifier in self._blocked

    def list(self) -> Set[str]:
        return set(self._blocked)

    def replace(self, identifiers: Iterable[str]) -> None:
        """Restore membership from a snapshot without notifying"""
        self._blocked = set(identifiers)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Blocklist listener {listener!r} failed: {e}", exc_info=True)
