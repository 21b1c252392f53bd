from .user import User, RefreshToken
from .doctor import Doctor
from .specialty import Specialty
from .slot import Slot
from .booking import Booking, BookingStatus, ConsultationType, PaymentStatus
from .consultation import ConsultSession, Message, SessionStatus, MessageType

__all__ = [
    "User",
    "RefreshToken",
    "Doctor",
    "Specialty",
    "Slot",
    "Booking",
    "BookingStatus",
    "ConsultationType",
    "PaymentStatus",
    "ConsultSession",
    "Message",
    "SessionStatus",
    "MessageType",
]
