from app.models.professional import (
    CancellationPolicyUpdate,
    ProfessionalPolicyPublic,
    ProfessionalProfile,
    WorkingHoursEntry,
)
from app.models.service import Service
from app.models.appointment import Appointment, Booking, BookingCreate, BookingPayment, BookingPublic
from app.models.activity import ActivityLog

__all__ = [
    "ProfessionalProfile",
    "WorkingHoursEntry",
    "CancellationPolicyUpdate",
    "ProfessionalPolicyPublic",
    "Service",
    "Booking",
    "Appointment",
    "BookingPayment",
    "BookingCreate",
    "BookingPublic",
    "ActivityLog",
]
