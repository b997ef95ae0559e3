import time
from collections import OrderedDict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from chatdesk.domain.enums import MessageSender


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    sender: MessageSender
    content: str


class HistoryCache:
    """Recent message window per conversation, bounded in keys and length.

    Each key holds at most ``max_messages`` entries. Once more than
    ``max_keys`` keys are held the least recently used one is evicted, and a
    key untouched for ``ttl_seconds`` reads as a miss.
    """

    def __init__(
        self,
        max_keys: int = 5000,
        max_messages: int = 20,
        ttl_seconds: float = 6 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_keys < 1 or max_messages < 1:
            raise ValueError("History cache bounds must be positive.")
        self.max_keys = max_keys
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, deque[HistoryEntry]]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live(key) is not None

    def get(self, key: str) -> list[HistoryEntry] | None:
        window = self._live(key)
        if window is None:
            return None
        self._touch(key, window)
        return list(window)

    def prime(self, key: str, entries: Iterable[HistoryEntry]) -> None:
        window: deque[HistoryEntry] = deque(entries, maxlen=self.max_messages)
        self._touch(key, window)

    def append(self, key: str, entry: HistoryEntry) -> None:
        # Cold keys stay cold until primed from the store.
        window = self._live(key)
        if window is None:
            return
        window.append(entry)
        self._touch(key, window)

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
            return
        self._entries.pop(key, None)

    def _live(self, key: str) -> deque[HistoryEntry] | None:
        item = self._entries.get(key)
        if item is None:
            return None
        touched_at, window = item
        if self._clock() - touched_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return window

    def _touch(self, key: str, window: deque[HistoryEntry]) -> None:
        self._entries[key] = (self._clock(), window)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_keys:
            self._entries.popitem(last=False)
