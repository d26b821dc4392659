"""
Database Schemas for the Transport Ticketing Platform

Each Pydantic model describes the documents of one MongoDB collection.
Fields are snake_case in Python and stored camelCase (model_dump(by_alias=True)):
- Route -> "routes" (transport_db)
- TicketType -> "ticket_types" (ticketing_db)
- AdminUser -> "admin_users" (admin_db)
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_mongo(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# Passenger service
class Passenger(Document):
    email: EmailStr = Field(..., description="Login email, unique")
    phone_number: Optional[str] = Field(None, description="Contact phone")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None

class PassengerSession(Document):
    passenger_id: str = Field(..., description="Passenger _id as string")
    access_token: str = Field(..., description="Opaque session token")
    expires_at: datetime = Field(..., description="Removed by the TTL index once passed")


# Transport service
class Route(Document):
    name: str = Field(..., description="Display name, natural key for seeding")
    type: Literal["BUS", "TRAIN"]
    stops: List[str] = Field(default_factory=list)
    distance: float = Field(..., gt=0, description="Kilometres")
    estimated_duration: int = Field(..., gt=0, description="Minutes")
    base_price: float = Field(..., ge=0, description="NAD")
    is_active: bool = True

class Trip(Document):
    route_id: str
    departure_time: datetime
    status: str = "SCHEDULED"

class Schedule(Document):
    route_id: str
    day_of_week: int = Field(..., ge=0, le=6)
    effective_from: datetime
    effective_to: Optional[datetime] = None


# Ticketing service
class Ticket(Document):
    passenger_id: str
    route_id: str
    trip_id: Optional[str] = None
    status: str = "CREATED"
    purchase_time: datetime
    expiry_time: datetime

class TicketType(Document):
    name: str = Field(..., description="Natural key for seeding")
    type: str = Field(..., description="SINGLE or PASS")
    validity_period: int = Field(..., gt=0, description="Hours")
    max_uses: int = Field(..., ge=-1, description="-1 means unlimited")
    price_multiplier: float = Field(..., gt=0)
    is_active: bool = True


# Payment service
class Payment(Document):
    ticket_id: str
    passenger_id: str
    amount: float = Field(..., ge=0)
    status: str = "PENDING"
    transaction_id: Optional[str] = None
    processed_at: Optional[datetime] = None

class PaymentMethod(Document):
    passenger_id: str
    type: str
    is_default: bool = False


# Notification service
class Notification(Document):
    recipient_id: str
    type: str
    message: str
    is_read: bool = False
    priority: Literal["LOW", "MEDIUM", "HIGH"] = "MEDIUM"
    created_at: Optional[datetime] = None

class NotificationTemplate(Document):
    type: str
    channel: Literal["PUSH", "EMAIL", "SMS"]
    subject: str
    template: str = Field(..., description="Body with {{placeholder}} fields")
    is_active: bool = True


# Admin service
class AdminUser(Document):
    username: str = Field(..., description="Unique login name")
    email: EmailStr = Field(..., description="Unique contact email")
    password: str = Field(..., description="passlib hash, never plaintext")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "ADMIN"
    permissions: List[str] = Field(default_factory=list)
    is_active: bool = True

class ServiceDisruption(Document):
    route_id: str
    status: str = "ACTIVE"
    severity: Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"] = "MEDIUM"
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
