"""
Pydantic schemas for class listings and availability.
"""

from datetime import date, time
from typing import Optional
from pydantic import BaseModel

from app.models.enums import ClassStatus


class GymClassResponse(BaseModel):
    id: int
    name: str
    instructor: str
    description: Optional[str]
    start_time: time
    duration_minutes: int
    days_of_week: list[str]
    max_capacity: int
    status: ClassStatus
    publish_date: Optional[date]
    start_date: Optional[date]
    end_date: Optional[date]

    model_config = {"from_attributes": True}


class GymClassListResponse(BaseModel):
    classes: list[GymClassResponse]
    total: int
    cached: bool = False


class ClassAvailabilityResponse(BaseModel):
    class_id: int
    booking_date: date
    max_capacity: int
    confirmed_bookings: int
    spots_left: int
    is_full: bool
    cached: bool = False
