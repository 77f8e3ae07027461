"""
Structured event log shown to the user
"""
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, List, Tuple

from .constants import EVENT_LOG_CAPACITY
from .logging import get_logger

logger = get_logger("axiom.events")


class Severity(str, Enum):
    """Event severity"""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SYSTEM = "SYSTEM"


_LOG_LEVELS = {
    Severity.INFO: 20,
    Severity.WARN: 30,
    Severity.ERROR: 40,
    Severity.SYSTEM: 20,
}


@dataclass(frozen=True)
class LogEntry:
    """Single event record"""
    message: str
    severity: Severity = Severity.INFO
    timestamp: float = field(default_factory=time.time)
    
    @property
    def time(self) -> str:
        """Wall clock time as HH:MM:SS"""
        return datetime.fromtimestamp(self.timestamp).strftime("%H:%M:%S")


Observer = Callable[[LogEntry], None]


class EventLog:
    """
    Bounded event log, newest entry first.
    
    Entries beyond capacity are dropped from the tail. Entries are
    pushed to subscribers and, unless disabled, mirrored to the
    ``axiom.events`` logger.
    """
    
    def __init__(self, capacity: int = EVENT_LOG_CAPACITY, mirror_to_logger: bool = True):
        if capacity < 1:
            raise ValueError(f"Invalid capacity: {capacity}")
        self.capacity = capacity
        self.mirror_to_logger = mirror_to_logger
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)
        self._observers: List[Observer] = []
        self._lock = threading.Lock()
    
    def append(self, message: str, severity: Severity = Severity.INFO) -> LogEntry:
        """Record an event"""
        entry = LogEntry(message=message, severity=Severity(severity))
        with self._lock:
            # appendleft on a bounded deque discards from the right end
            self._entries.appendleft(entry)
            observers = list(self._observers)
        
        if self.mirror_to_logger:
            logger.log(_LOG_LEVELS[entry.severity], message)
        
        for observer in observers:
            try:
                observer(entry)
            except Exception as e:
                logger.debug(f"Event observer failed: {e}", exc_info=True)
        return entry
    
    def info(self, message: str) -> LogEntry:
        return self.append(message, Severity.INFO)
    
    def warn(self, message: str) -> LogEntry:
        return self.append(message, Severity.WARN)
    
    def error(self, message: str) -> LogEntry:
        return self.append(message, Severity.ERROR)
    
    def system(self, message: str) -> LogEntry:
        return self.append(message, Severity.SYSTEM)
    
    def snapshot(self) -> Tuple[LogEntry, ...]:
        """Get all entries, newest first"""
        with self._lock:
            return tuple(self._entries)
    
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer for new entries.
        
        Returns:
            Callable that removes the observer
        """
        with self._lock:
            self._observers.append(observer)
        
        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)
        
        return unsubscribe
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

