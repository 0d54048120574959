from datetime import datetime
from models.db import db

class Reservation(db.Model):
    __tablename__ = "reservations"

    id = db.Column(db.Integer, primary_key=True)

    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False, index=True)
    payer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    # amount breakdown, smallest unit (paise)
    base_amount = db.Column(db.Integer, nullable=False)
    platform_commission = db.Column(db.Integer, nullable=False)
    gateway_fee = db.Column(db.Integer, nullable=False)
    total_charged = db.Column(db.Integer, nullable=False)
    owner_share = db.Column(db.Integer, nullable=False)
    platform_share = db.Column(db.Integer, nullable=False)

    payment_reference = db.Column(db.String(255), nullable=False)
    payment_provider = db.Column(db.String(20), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default="confirmed")
    # status values: pending, confirmed, cancelled, completed

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    checked_in_by = db.Column(db.Integer, nullable=True)

    __table_args__ = (
        # one captured payment can pay for exactly one reservation
        db.UniqueConstraint("payment_reference", name="uq_reservation_payment_ref"),
        db.Index("ix_reservation_venue_date", "venue_id", "date"),
    )
