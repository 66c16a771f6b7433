from datetime import time
from typing import List

from .types import from_minutes, to_minutes


def generate_slots(open_time: time, close_time: time, granularity_minutes: int) -> List[time]:
    """
    Slot starts from open_time in granularity steps, strictly before close_time.

        generate_slots(09:00, 10:30, 30) -> [09:00, 09:30, 10:00]
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    slots: list[time] = []
    cursor = to_minutes(open_time)
    end = to_minutes(close_time)
    while cursor < end:
        slots.append(from_minutes(cursor))
        cursor += granularity_minutes
    return slots
