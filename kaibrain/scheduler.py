from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class _Pending:
    due: float
    seq: int
    session_id: str = field(compare=False)
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class Scheduler:
    """Fire-once delayed callbacks, tracked per session.

    Nothing runs on its own: the logic tick calls `run_due()`. Tearing a
    session down with `cancel_session()` drops everything it still has queued.
    """

    def __init__(self, clock: Callable[[], float]):
        self.clock = clock
        self._heap: List[_Pending] = []
        self._by_handle: Dict[int, _Pending] = {}
        self._seq = itertools.count(1)

    def call_later(self, delay_ms: float, callback: Callable[[], None], session_id: str) -> int:
        handle = next(self._seq)
        item = _Pending(due=self.clock() + max(0.0, delay_ms), seq=handle, session_id=session_id, callback=callback)
        heapq.heappush(self._heap, item)
        self._by_handle[handle] = item
        return handle

    def cancel(self, handle: int) -> bool:
        item = self._by_handle.pop(handle, None)
        if item is None:
            return False
        item.cancelled = True
        return True

    def cancel_session(self, session_id: str) -> int:
        n = 0
        for handle, item in list(self._by_handle.items()):
            if item.session_id == session_id:
                item.cancelled = True
                del self._by_handle[handle]
                n += 1
        if n:
            logger.debug("dropped %d delayed callbacks of session %s", n, session_id)
        return n

    def run_due(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        ran = 0
        while self._heap and self._heap[0].due <= now:
            item = heapq.heappop(self._heap)
            if item.cancelled:
                continue
            self._by_handle.pop(item.seq, None)
            item.callback()
            ran += 1
        return ran

    def pending(self, session_id: Optional[str] = None) -> int:
        if session_id is None:
            return len(self._by_handle)
        return sum(1 for item in self._by_handle.values() if item.session_id == session_id)
