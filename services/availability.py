"""Slot availability index.

The unavailable set is derived on every call from the ledger and never
cached: it has to reflect the latest committed reservations and holds.
"""

from datetime import date

from services.ledger import OccupiedRange, ReservationLedger
from services.settings import BookingSettings
from services.time_range import TimeRange, day_window


def is_available(candidate: TimeRange, unavailable, slot_minutes: int) -> bool:
    """True if every ``slot_minutes`` sub-slot of ``candidate`` is free.

    Half-open: a candidate ending exactly when a booked range starts is free.
    """
    ranges = [r.time_range if isinstance(r, OccupiedRange) else r for r in unavailable]
    for slot in candidate.sub_slots(slot_minutes):
        if any(slot.overlaps(taken) for taken in ranges):
            return False
    return True


class AvailabilityIndex:
    def __init__(self, ledger: ReservationLedger, settings: BookingSettings) -> None:
        self._ledger = ledger
        self._settings = settings

    def unavailable_ranges(self, venue_id: int, day: date) -> list[OccupiedRange]:
        return self._ledger.read_ranges_for(venue_id, day)

    def is_available(self, candidate: TimeRange, unavailable) -> bool:
        return is_available(candidate, unavailable, self._settings.slot_minutes)

    def slot_grid(self, venue_id: int, day: date, unavailable=None) -> list[dict]:
        """The opening window cut into slots, each flagged available or not."""
        if unavailable is None:
            unavailable = self.unavailable_ranges(venue_id, day)
        window = day_window(day, self._settings.opening_time, self._settings.closing_time)
        now = self._settings.local_now()

        out = []
        for slot in window.sub_slots(self._settings.slot_minutes):
            entry = slot.to_dict()
            entry.pop("date")
            entry["available"] = slot.starts_at() > now and self.is_available(slot, unavailable)
            out.append(entry)
        return out
