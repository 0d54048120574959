from models.db import db

class SlotClaim(db.Model):
    """One occupied sub-slot of a venue/date, owned by a reservation or a hold."""

    __tablename__ = "slot_claims"

    id = db.Column(db.Integer, primary_key=True)

    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    slot_start = db.Column(db.Time, nullable=False)
    slot_end = db.Column(db.Time, nullable=False)

    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=True, index=True)
    hold_id = db.Column(db.Integer, db.ForeignKey("holds.id"), nullable=True, index=True)

    __table_args__ = (
        # Hard business-rule: a sub-slot can be occupied once (prevents double booking)
        db.UniqueConstraint("venue_id", "date", "slot_start", name="uq_slot_claim_once"),
        db.CheckConstraint(
            "(reservation_id IS NULL) <> (hold_id IS NULL)",
            name="ck_slot_claim_single_owner",
        ),
    )
