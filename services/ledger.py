"""Reservation ledger: durable reservations, holds and their slot claims.

Creation goes through ``insert_if_absent`` (guarded by the slot-claim and
payment-reference unique constraints). Status changes go through
``update_status`` (compare-and-swap on the current status). Nothing else
writes reservation rows.
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from models.hold import Hold
from models.reservation import Reservation
from models.slot_claim import SlotClaim
from services.time_range import TimeRange

KIND_RESERVATION = "reservation"
KIND_HOLD = "hold"

CLAIM_CONSTRAINT = "uq_slot_claim_once"
CLAIM_COLUMNS = "slot_claims.venue_id, slot_claims.date, slot_claims.slot_start"


class DuplicateClaim(Exception):
    """A sub-slot of the entry is already claimed."""


class DuplicatePaymentReference(Exception):
    """Another reservation already carries this payment reference."""


@dataclass(frozen=True)
class OccupiedRange:
    time_range: TimeRange
    kind: str
    owner_id: int

    def to_dict(self) -> dict:
        out = self.time_range.to_dict()
        out["kind"] = self.kind
        out["id"] = self.owner_id
        return out


def _claims_for(entry, time_range: TimeRange, slot_minutes: int) -> list[SlotClaim]:
    owner = {"reservation_id": entry.id} if isinstance(entry, Reservation) else {"hold_id": entry.id}
    return [
        SlotClaim(
            venue_id=entry.venue_id,
            date=slot.date,
            slot_start=slot.start,
            slot_end=slot.end,
            **owner,
        )
        for slot in time_range.sub_slots(slot_minutes)
    ]


def _is_claim_collision(error: IntegrityError) -> bool:
    # PostgreSQL/MySQL name the constraint; SQLite lists its columns
    message = str(error.orig)
    return CLAIM_CONSTRAINT in message or CLAIM_COLUMNS in message


class ReservationLedger:
    def __init__(self, session, slot_minutes: int) -> None:
        self._session = session
        self._slot_minutes = slot_minutes

    def read_ranges_for(self, venue_id: int, day: date) -> list[OccupiedRange]:
        """Every occupied range for a venue/date, from a single SELECT."""
        rows = self._session.execute(
            select(SlotClaim.reservation_id, SlotClaim.hold_id, SlotClaim.slot_start, SlotClaim.slot_end)
            .where(SlotClaim.venue_id == venue_id, SlotClaim.date == day)
            .order_by(SlotClaim.slot_start)
        ).all()

        # claims of one owner are contiguous; fold them back into its range
        spans = {}
        for reservation_id, hold_id, slot_start, slot_end in rows:
            key = (KIND_RESERVATION, reservation_id) if reservation_id is not None else (KIND_HOLD, hold_id)
            first, _ = spans.get(key, (slot_start, slot_end))
            spans[key] = (first, slot_end)

        out = [
            OccupiedRange(TimeRange(day, start, end), kind, owner_id)
            for (kind, owner_id), (start, end) in spans.items()
        ]
        out.sort(key=lambda r: r.time_range)
        return out

    def insert_if_absent(self, entry, time_range: TimeRange):
        """Persist a reservation or hold together with its slot claims.

        Either the entry and all of its claims commit, or nothing does.

        Raises:
            DuplicatePaymentReference: The payment already paid for a reservation.
            DuplicateClaim: Some sub-slot is already occupied.
            SQLAlchemyError: Any other store failure, other integrity
                violations included (after rollback).
        """
        session = self._session
        try:
            session.add(entry)
            session.flush()
            session.add_all(_claims_for(entry, time_range, self._slot_minutes))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if isinstance(entry, Reservation) and self.find_by_payment_reference(entry.payment_reference):
                raise DuplicatePaymentReference(entry.payment_reference)
            if _is_claim_collision(e):
                raise DuplicateClaim(time_range)
            raise
        except Exception:
            session.rollback()
            raise
        return entry

    def update_status(self, reservation_id: int, from_status: str, to_status: str,
                      release_claims: bool = False, **fields) -> bool:
        """Compare-and-swap the status; returns False if it was not ``from_status``.

        With ``release_claims`` the reservation's slot claims are deleted in the
        same transaction, freeing its range on commit.
        """
        session = self._session
        try:
            result = session.execute(
                update(Reservation)
                .where(Reservation.id == reservation_id, Reservation.status == from_status)
                .values(status=to_status, **fields)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            if release_claims:
                session.execute(delete(SlotClaim).where(SlotClaim.reservation_id == reservation_id))
            session.commit()
        except Exception:
            session.rollback()
            raise
        # drop stale identity-map state after the bulk UPDATE
        session.expire_all()
        return True

    def delete_hold(self, hold: Hold) -> None:
        session = self._session
        try:
            session.execute(delete(SlotClaim).where(SlotClaim.hold_id == hold.id))
            session.delete(hold)
            session.commit()
        except Exception:
            session.rollback()
            raise

    def get(self, reservation_id: int) -> Reservation | None:
        return self._session.get(Reservation, reservation_id)

    def get_hold(self, hold_id: int) -> Hold | None:
        return self._session.get(Hold, hold_id)

    def find_by_payment_reference(self, payment_ref: str) -> Reservation | None:
        return self._session.execute(
            select(Reservation).where(Reservation.payment_reference == payment_ref)
        ).scalar_one_or_none()

    def reservations_for(self, venue_id: int, day: date | None = None) -> list[Reservation]:
        q = select(Reservation).where(Reservation.venue_id == venue_id)
        if day is not None:
            q = q.where(Reservation.date == day)
        return list(self._session.execute(q.order_by(Reservation.date, Reservation.start_time)).scalars())

    def reservations_of(self, payer_id: int, status: str | None = None) -> list[Reservation]:
        q = select(Reservation).where(Reservation.payer_id == payer_id)
        if status:
            q = q.where(Reservation.status == status)
        return list(self._session.execute(q.order_by(Reservation.created_at.desc())).scalars())

    def holds_for(self, venue_id: int, day: date | None = None) -> list[Hold]:
        q = select(Hold).where(Hold.venue_id == venue_id)
        if day is not None:
            q = q.where(Hold.date == day)
        return list(self._session.execute(q.order_by(Hold.date, Hold.start_time)).scalars())
