from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4


class Clock(ABC):
    """
    Source of UTC-aware timestamps for moderation records.
    """
    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """
    Test clock. Only moves when advanced.
    """
    def __init__(self, start: datetime):
        if start.tzinfo is None:
            raise ValueError("FrozenClock requires timezone-aware datetime")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> None:
        self._current += delta


class IdSource(ABC):
    @abstractmethod
    def new_id(self) -> UUID:
        pass


class RandomIdSource(IdSource):
    def new_id(self) -> UUID:
        return uuid4()
