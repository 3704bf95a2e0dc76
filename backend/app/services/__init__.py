"""Workflow services.

Importing the package registers every event subscriber.  Registration
order is dispatch order: the order tracker runs before the pallet
manager, and the history recorder (subscribed to the PanelEvent base)
runs last.
"""

from app.services import events  # noqa: F401
from app.services import stations  # noqa: F401
from app.services import lifecycle  # noqa: F401
from app.services import rework  # noqa: F401
from app.services import inspections  # noqa: F401
from app.services import orders  # noqa: F401
from app.services import pallets  # noqa: F401
from app.services import panels  # noqa: F401
