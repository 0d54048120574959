from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .venue import Venue
from .reservation import Reservation
from .hold import Hold
from .slot_claim import SlotClaim
