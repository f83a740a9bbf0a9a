from .health import health_bp
from .sessions import sessions_bp
from .booking import booking_bp
from .machines import machines_bp
from .studio import studio_bp
