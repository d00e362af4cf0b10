"""ORM models; importing this package registers every table on ``Base``."""

from clinic_sync.models.appointment import Appointment
from clinic_sync.models.base import Base
from clinic_sync.models.license import License
from clinic_sync.models.notification import Notification
from clinic_sync.models.patient import Patient

__all__ = ["Appointment", "Base", "License", "Notification", "Patient"]
