from app.schemas.user import UserResponse, UserLogin, Token
from app.schemas.gym_class import GymClassResponse, GymClassListResponse, ClassAvailabilityResponse
from app.schemas.booking import (
    BookingCreate, SessionRequest, BookingResponse, BookingDetailResponse,
    BookingCreateResponse, BookingCancelResponse, SessionTransitionResponse,
)

__all__ = [
    "UserResponse", "UserLogin", "Token",
    "GymClassResponse", "GymClassListResponse", "ClassAvailabilityResponse",
    "BookingCreate", "SessionRequest", "BookingResponse", "BookingDetailResponse",
    "BookingCreateResponse", "BookingCancelResponse", "SessionTransitionResponse",
]
