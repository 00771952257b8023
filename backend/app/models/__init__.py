from app.models.user import User
from app.models.gym_class import GymClass
from app.models.booking import Booking

__all__ = ["User", "GymClass", "Booking"]
