# Models package — import all models here so Alembic can discover them.

from relay.models.payment_event import PaymentEvent  # noqa: F401
from relay.models.maintenance import Maintenance  # noqa: F401
