from datetime import datetime
from models.db import db

class Hold(db.Model):
    __tablename__ = "holds"

    id = db.Column(db.Integer, primary_key=True)

    venue_id = db.Column(db.Integer, db.ForeignKey("venues.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    placed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason = db.Column(db.String(160), nullable=True)  # e.g. "Phone booking - John"

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
