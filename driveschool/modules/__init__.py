"""Domain modules package."""

from driveschool.modules.audit import models as audit_models  # noqa: F401
from driveschool.modules.booking import models as booking_models  # noqa: F401
from driveschool.modules.exams import models as exams_models  # noqa: F401
from driveschool.modules.identity import models as identity_models  # noqa: F401
from driveschool.modules.notifications import models as notifications_models  # noqa: F401
from driveschool.modules.scheduling import models as scheduling_models  # noqa: F401
