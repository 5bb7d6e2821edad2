"""Domain modules package."""

from calico.modules.booking import models as booking_models  # noqa: F401
from calico.modules.identity import models as identity_models  # noqa: F401
from calico.modules.notifications import models as notifications_models  # noqa: F401
from calico.modules.scheduling import models as scheduling_models  # noqa: F401
from calico.modules.sessions import models as sessions_models  # noqa: F401
