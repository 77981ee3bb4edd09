from .vendor import Vendor, VendorStatus, PropertyVendorAssignment
from .maintenance import (
    PreventiveMaintenanceTemplate,
    PropertyMaintenanceSchedule,
    ScheduledMaintenanceTask,
    Booking,
)
from .circuit_breaker_state import CircuitBreakerState

__all__ = [
    "Vendor",
    "VendorStatus",
    "PropertyVendorAssignment",
    "PreventiveMaintenanceTemplate",
    "PropertyMaintenanceSchedule",
    "ScheduledMaintenanceTask",
    "Booking",
    "CircuitBreakerState",
]
