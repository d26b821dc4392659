"""
Declarative schema for the ticketing platform databases.

Each service owns one database. The bootstrapper walks this catalog in order;
nothing here touches the server.
"""
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

ASCENDING = 1


class IndexSpec(BaseModel):
    keys: List[Tuple[str, int]] = Field(..., min_length=1, description="(field, direction) pairs")
    unique: bool = False
    expire_after_seconds: Optional[int] = Field(None, ge=0, description="TTL threshold, None for regular indexes")

    @property
    def name(self) -> str:
        # Same naming MongoDB uses when no name is given
        return "_".join(f"{field}_{direction}" for field, direction in self.keys)

    def options(self) -> dict:
        opts = {"name": self.name}
        if self.unique:
            opts["unique"] = True
        if self.expire_after_seconds is not None:
            opts["expireAfterSeconds"] = self.expire_after_seconds
        return opts


class CollectionSpec(BaseModel):
    name: str
    indexes: List[IndexSpec] = Field(default_factory=list)


class DatabaseSpec(BaseModel):
    name: str
    service: str = Field(..., description="Service that owns the database")
    collections: List[CollectionSpec]

    @property
    def username(self) -> str:
        return f"{self.name}_user"

    def roles(self) -> List[dict]:
        return [
            {"role": "readWrite", "db": self.name},
            {"role": "dbAdmin", "db": self.name},
        ]


def index(*fields: str, unique: bool = False, ttl: Optional[int] = None) -> IndexSpec:
    return IndexSpec(keys=[(f, ASCENDING) for f in fields], unique=unique, expire_after_seconds=ttl)


def collection(name: str, *indexes: IndexSpec) -> CollectionSpec:
    return CollectionSpec(name=name, indexes=list(indexes))


CATALOG: List[DatabaseSpec] = [
    DatabaseSpec(
        name="passenger_db",
        service="passenger",
        collections=[
            collection(
                "passengers",
                index("email", unique=True),
                index("phoneNumber"),
                index("createdAt"),
            ),
            collection(
                "passenger_sessions",
                index("passengerId"),
                index("accessToken"),
                index("expiresAt", ttl=0),
            ),
        ],
    ),
    DatabaseSpec(
        name="transport_db",
        service="transport",
        collections=[
            collection("routes", index("name"), index("type"), index("isActive")),
            collection(
                "trips",
                index("routeId"),
                index("departureTime"),
                index("status"),
                index("routeId", "departureTime"),
            ),
            collection(
                "schedules",
                index("routeId"),
                index("dayOfWeek"),
                index("effectiveFrom", "effectiveTo"),
            ),
        ],
    ),
    DatabaseSpec(
        name="ticketing_db",
        service="ticketing",
        collections=[
            collection(
                "tickets",
                index("passengerId"),
                index("routeId"),
                index("tripId"),
                index("status"),
                index("purchaseTime"),
                index("expiryTime"),
                index("passengerId", "status"),
            ),
            collection("ticket_types", index("type"), index("isActive")),
        ],
    ),
    DatabaseSpec(
        name="payment_db",
        service="payment",
        collections=[
            collection(
                "payments",
                index("ticketId"),
                index("passengerId"),
                index("status"),
                index("transactionId"),
                index("processedAt"),
            ),
            collection(
                "payment_methods",
                index("passengerId"),
                index("passengerId", "isDefault"),
            ),
        ],
    ),
    DatabaseSpec(
        name="notification_db",
        service="notification",
        collections=[
            collection(
                "notifications",
                index("recipientId"),
                index("type"),
                index("isRead"),
                index("priority"),
                index("createdAt"),
                index("recipientId", "isRead"),
            ),
            collection("notification_templates", index("type", "channel")),
        ],
    ),
    DatabaseSpec(
        name="admin_db",
        service="admin",
        collections=[
            collection(
                "admin_users",
                index("username", unique=True),
                index("email", unique=True),
                index("role"),
            ),
            collection(
                "service_disruptions",
                index("routeId"),
                index("status"),
                index("severity"),
                index("startTime", "endTime"),
            ),
        ],
    ),
]

DATABASE_NAMES = [spec.name for spec in CATALOG]


def get_database_spec(name: str) -> DatabaseSpec:
    for spec in CATALOG:
        if spec.name == name:
            return spec
    raise KeyError(name)
