from flask import current_app, g

from models import db
from services.admission import AdmissionController
from services.ledger import ReservationLedger
from services.payment_verifier import PaymentVerifier
from services.venues import VenueDirectory


def booking_settings():
    return current_app.extensions["booking_settings"]


def get_ledger() -> ReservationLedger:
    if "ledger" not in g:
        g.ledger = ReservationLedger(db.session, booking_settings().slot_minutes)
    return g.ledger


def get_admission_controller() -> AdmissionController:
    """Per-request controller over the request's DB session."""
    if "admission" not in g:
        settings = booking_settings()
        verifier = PaymentVerifier(current_app.extensions["payment_gateway"], settings.currency)
        g.admission = AdmissionController(get_ledger(), VenueDirectory(db.session), verifier, settings)
    return g.admission
