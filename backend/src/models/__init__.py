# Package initialization
# Import all models to ensure relationships are properly established
from .provider import Provider
from .provider_schedule import ProviderSchedule, ScheduleBlock
from .provider_exception import ProviderException
from .booking_assignment import BookingAssignment

__all__ = [
    "Provider",
    "ProviderSchedule",
    "ScheduleBlock",
    "ProviderException",
    "BookingAssignment",
]
