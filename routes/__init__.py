from .health import health_bp
from .auth import auth_bp
from .availability import availability_bp
from .booking import booking_bp
from .holds import holds_bp
from .venues import venues_bp
from .audit_logs import audit_bp
from .payments import payments_bp
