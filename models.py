from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from utils import to_utc_iso

Role = Literal["admin", "instructor", "member"]
BookingStatus = Literal["confirmed", "waitlist", "cancelled"]
STUDIO_OWNER_ROLES = ("admin", "instructor")


class UserCreate(BaseModel):
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    role: Role = "member"


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Role
    created_at_utc: str


class ClassCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    instructor_id: int = Field(..., gt=0)
    start_time: datetime  # naive values are studio local time
    end_time: datetime
    max_capacity: int = Field(20, gt=0)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def check_times(self):
        if to_utc_iso(self.start_time) >= to_utc_iso(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class ClassUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    instructor_id: Optional[int] = Field(None, gt=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    max_capacity: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def check_times(self):
        # Only checkable here when both ends are given; storage checks the merged row
        if self.start_time and self.end_time and to_utc_iso(self.start_time) >= to_utc_iso(self.end_time):
            raise ValueError("start_time must be before end_time")
        return self


class BookRequest(BaseModel):
    class_id: int = Field(..., gt=0)


class BookingOut(BaseModel):
    id: int
    user_id: int
    class_id: int
    status: BookingStatus
    booking_date_utc: str
    created_at_utc: str
    class_title: str
    class_start_utc: str
    user_email: str
    user_name: str


class ClassOut(BaseModel):
    id: int
    title: str
    description: str
    instructor_id: int
    instructor_name: str
    start_utc: str
    end_utc: str
    start_local: str  # rendered in the requested timezone
    end_local: str
    max_capacity: int
    current_capacity: int
    available_slots: int
    price: Decimal
    created_at_utc: str


class ClassDetailOut(ClassOut):
    bookings: List[BookingOut] = []


class Message(BaseModel):
    message: str
