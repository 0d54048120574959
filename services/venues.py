"""Read-only venue lookup used by the booking core."""

from dataclasses import dataclass
from decimal import Decimal

from models.venue import Venue
from services.errors import VenueNotFound
from services.pricing import from_minor_units


@dataclass(frozen=True)
class VenueSnapshot:
    id: int
    owner_user_id: int
    hourly_rate: Decimal
    is_active: bool
    is_verified: bool

    @property
    def bookable(self) -> bool:
        return self.is_active and self.is_verified


class VenueDirectory:
    def __init__(self, session) -> None:
        self._session = session

    def get_venue(self, venue_id: int) -> VenueSnapshot:
        venue = self._session.get(Venue, venue_id)
        if venue is None:
            raise VenueNotFound(venue_id)
        return VenueSnapshot(
            id=venue.id,
            owner_user_id=venue.owner_user_id,
            hourly_rate=from_minor_units(venue.hourly_rate),
            is_active=venue.is_active,
            is_verified=venue.is_verified,
        )
