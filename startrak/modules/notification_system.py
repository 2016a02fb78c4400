"""
Notification System Module - StarTrak Attendance System

Realtime fan-out of attendance changes to dashboards and scanning kiosks.
The attendance store publishes an event after every committed write to
``attendance_records``; subscribers only observe. A failing subscriber is
logged and skipped, it never affects the write that produced the event.

Also holds the bounded recent-activity log shown beside the scanner.
"""

import itertools
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, asdict, field
from datetime import datetime
from queue import Queue, Full
from typing import Any, Callable, Dict, List, Optional


@dataclass
class AttendanceEvent:
    """Data structure for a change notification."""
    id: int
    event: str
    table: str
    record: Dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_sse(self) -> str:
        """Format as a Server-Sent Events message."""
        return f"id: {self.id}\nevent: {self.event.lower()}\ndata: {json.dumps(self.to_dict())}\n\n"


class NotificationSystem:
    """
    Publish/subscribe hub for attendance change events.
    Callback subscribers are called synchronously; stream subscribers get a
    bounded queue that a streaming response drains.
    """

    def __init__(self, max_queue_size: int = 1000):
        self.logger = logging.getLogger(__name__)
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[int, Callable[[AttendanceEvent], None]] = {}
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._event_ids = itertools.count(1)

    def subscribe(self, callback: Callable[[AttendanceEvent], None]) -> int:
        """
        Register a callback for every published event.

        Returns:
            int: Token to pass to unsubscribe()
        """
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def open_stream(self):
        """
        Subscribe a queue for a streaming client.

        Returns:
            tuple: (token, queue) - pass the token to unsubscribe() when the
            client disconnects
        """
        stream: Queue = Queue(maxsize=self.max_queue_size)

        def enqueue(event):
            try:
                stream.put_nowait(event)
            except Full:
                self.logger.warning(f"Notification stream full, dropping event {event.id}")

        return self.subscribe(enqueue), stream

    def publish(self, event: str, table: str, record: Dict[str, Any]) -> AttendanceEvent:
        """
        Deliver a change event to all subscribers.

        Args:
            event (str): INSERT or UPDATE
            table (str): Source table name
            record (Dict[str, Any]): Row after the change
        """
        notification = AttendanceEvent(
            id=next(self._event_ids),
            event=event,
            table=table,
            record=record
        )

        with self._lock:
            subscribers = list(self._subscribers.values())

        for callback in subscribers:
            try:
                callback(notification)
            except Exception as e:
                self.logger.error(f"Notification subscriber failed on event {notification.id}: {str(e)}")

        self.logger.debug(f"Published {event} on {table} to {len(subscribers)} subscriber(s)")
        return notification

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


class RecentActivityLog:
    """Bounded, newest-first log of scan outcomes."""

    def __init__(self, limit: int = 5):
        self._entries = deque(maxlen=limit)
        self._lock = threading.Lock()

    def append(self, entry: Dict[str, Any]) -> None:
        with self._lock:
            self._entries.appendleft(entry)

    def entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            items = list(self._entries)
        return items[:limit] if limit else items

    def __len__(self):
        return len(self._entries)
