"""In-memory media store and ledger for tests and dry runs."""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Union

from .models import MediaFile
from .ports import Receipt

# A queued fault: an exception to raise, or ``None`` to simulate a declined approval.
Fault = Optional[BaseException]


class _FaultQueue:
    def __init__(self) -> None:
        self._faults: Deque[Fault] = deque()

    def push(self, fault: Fault) -> None:
        self._faults.append(fault)

    def pop(self) -> Union[Fault, bool]:
        """Return the next fault, or ``False`` when none is queued."""
        if not self._faults:
            return False
        return self._faults.popleft()


class InMemoryMediaStore:
    """Keep uploaded files in local memory.

    Data is not persisted across process restarts.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.files: Dict[str, MediaFile] = {}
        self.calls = 0
        self._delay = delay
        self._faults = _FaultQueue()

    def fail_next(self, error: BaseException) -> None:
        """Make the next upload raise ``error``."""
        self._faults.push(error)

    async def upload(self, file: MediaFile) -> str:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        fault = self._faults.pop()
        if isinstance(fault, BaseException):
            raise fault
        reference = f"ar://{uuid.uuid4().hex}"
        self.files[reference] = file
        return reference


class InMemoryLedger:
    """Simple in-process ledger with topics and ordered messages."""

    def __init__(self, delay: float = 0.0) -> None:
        self.topics: Dict[str, List[Any]] = defaultdict(list)
        self.memos: Dict[str, str] = {}
        self._next_topic = 1000
        self._delay = delay
        self._lock = asyncio.Lock()
        self._create_faults = _FaultQueue()
        self._send_faults = _FaultQueue()

    def fail_next_create(self, error: BaseException) -> None:
        self._create_faults.push(error)

    def fail_next_send(self, error: BaseException) -> None:
        self._send_faults.push(error)

    def decline_next_create(self) -> None:
        """Simulate the user declining the next topic creation."""
        self._create_faults.push(None)

    def decline_next_send(self) -> None:
        """Simulate the user declining the next message submission."""
        self._send_faults.push(None)

    def latest(self, topic_id: str) -> Any:
        messages = self.topics.get(topic_id) or []
        return messages[-1] if messages else None

    async def create_topic(self, memo: str) -> Optional[str]:
        if self._delay:
            await asyncio.sleep(self._delay)
        fault = self._create_faults.pop()
        if fault is None:
            return None
        if isinstance(fault, BaseException):
            raise fault
        async with self._lock:
            self._next_topic += 1
            topic_id = f"0.0.{self._next_topic}"
            self.topics[topic_id] = []
            self.memos[topic_id] = memo
        return topic_id

    async def send_message(self, topic_id: str, payload: Any) -> Optional[Receipt]:
        if self._delay:
            await asyncio.sleep(self._delay)
        fault = self._send_faults.pop()
        if fault is None:
            return None
        if isinstance(fault, BaseException):
            raise fault
        async with self._lock:
            self.topics[topic_id].append(payload)
            sequence = len(self.topics[topic_id])
        return Receipt(status="SUCCESS", topic_id=topic_id, sequence_number=sequence)
