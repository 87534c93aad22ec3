from datetime import date, time
from typing import Iterable, List

SLOT_FORMAT = "%H:%M"


def weekday_name(day: date) -> str:
    return day.strftime("%A").lower()


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def slot_starts(start_time: time, end_time: time, slot_duration: int, break_time: int) -> List[time]:
    """Every slot start before ``end_time``, stepping by slot plus break."""
    if slot_duration <= 0:
        raise ValueError("slot_duration must be positive")
    step = slot_duration + max(break_time, 0)
    end = _minutes(end_time)
    current = _minutes(start_time)
    starts = []
    while current < end:
        starts.append(time(current // 60, current % 60))
        current += step
    return starts


def generate_slots(start_time: time, end_time: time, slot_duration: int, break_time: int, booked: Iterable[time] = ()) -> List[str]:
    """Free slot starts as ``HH:MM`` strings; a slot is taken only on an exact start-time match."""
    taken = {t.strftime(SLOT_FORMAT) for t in booked}
    return [
        s.strftime(SLOT_FORMAT)
        for s in slot_starts(start_time, end_time, slot_duration, break_time)
        if s.strftime(SLOT_FORMAT) not in taken
    ]


def within_hours(start_time: time, end_time: time, candidate: time) -> bool:
    return _minutes(start_time) <= _minutes(candidate) < _minutes(end_time)
