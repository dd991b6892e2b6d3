from slotwise.models.appointment import (
    Appointment,
    AppointmentStatus,
    ClientContact,
    PaymentStatus,
)
from slotwise.models.business import Business, BusinessConfig
from slotwise.models.schedule import BreakWindow, DaySchedule, WeeklySchedule, Weekday
from slotwise.models.service import Service
from slotwise.models.staff import StaffMember, StaffServiceLink

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "ClientContact",
    "PaymentStatus",
    "Business",
    "BusinessConfig",
    "BreakWindow",
    "DaySchedule",
    "WeeklySchedule",
    "Weekday",
    "Service",
    "StaffMember",
    "StaffServiceLink",
]
