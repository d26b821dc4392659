"""
Reference and sample documents inserted at bootstrap time.

Seeds are keyed by a natural key and written with $setOnInsert, so a re-run
never duplicates or modifies what is already there.
"""
from typing import Dict, List, Tuple

from loguru import logger
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import stamp_document
from schemas import AdminUser, NotificationTemplate, Route, TicketType


class SeedSet(BaseModel):
    database: str
    collection: str
    natural_key: Tuple[str, ...]
    records: List[dict]
    timestamps: Tuple[str, ...] = ("createdAt",)


class SeedResult(BaseModel):
    collection: str
    inserted: int = 0
    skipped: int = 0
    inserted_keys: List[Dict] = Field(default_factory=list)


ROUTES = [
    Route(
        name="City Center - Airport",
        type="BUS",
        stops=["City Center", "Shopping Mall", "University", "Airport"],
        distance=25.5,
        estimated_duration=45,
        base_price=15.50,
    ),
    Route(
        name="Windhoek Central - Katutura",
        type="BUS",
        stops=["Windhoek Central", "Khomasdal", "Goreangab", "Katutura"],
        distance=18.2,
        estimated_duration=35,
        base_price=12.00,
    ),
    Route(
        name="Windhoek - Rehoboth Express",
        type="TRAIN",
        stops=["Windhoek Station", "Dordabis", "Rehoboth Station"],
        distance=90.0,
        estimated_duration=120,
        base_price=35.00,
    ),
]

TICKET_TYPES = [
    TicketType(name="Single Ride", type="SINGLE", validity_period=4, max_uses=1, price_multiplier=1.0),
    TicketType(name="Day Pass", type="PASS", validity_period=24, max_uses=-1, price_multiplier=3.0),
    TicketType(name="Weekly Pass", type="PASS", validity_period=168, max_uses=-1, price_multiplier=15.0),
]

NOTIFICATION_TEMPLATES = [
    NotificationTemplate(
        type="TICKET_VALIDATED",
        channel="PUSH",
        subject="Ticket Validated",
        template="Your ticket for {{routeName}} has been validated at {{location}}",
    ),
    NotificationTemplate(
        type="PAYMENT_CONFIRMED",
        channel="EMAIL",
        subject="Payment Confirmation",
        template="Your payment of {{amount}} NAD for ticket {{ticketId}} has been confirmed",
    ),
    NotificationTemplate(
        type="SCHEDULE_UPDATE",
        channel="PUSH",
        subject="Schedule Update",
        template="Route {{routeName}} schedule has been updated. New departure time: {{newTime}}",
    ),
]


def reference_seeds() -> List[SeedSet]:
    return [
        SeedSet(
            database="transport_db",
            collection="routes",
            natural_key=("name",),
            records=[r.to_mongo() for r in ROUTES],
            timestamps=("createdAt", "updatedAt"),
        ),
        SeedSet(
            database="ticketing_db",
            collection="ticket_types",
            natural_key=("name",),
            records=[t.to_mongo() for t in TICKET_TYPES],
        ),
        SeedSet(
            database="notification_db",
            collection="notification_templates",
            natural_key=("type", "channel"),
            records=[t.to_mongo() for t in NOTIFICATION_TEMPLATES],
        ),
    ]


def admin_seed(username: str, email: str, password_hash: str) -> SeedSet:
    admin = AdminUser(
        username=username,
        email=email,
        password=password_hash,
        first_name="System",
        last_name="Administrator",
        role="ADMIN",
        permissions=["ALL"],
    )
    return SeedSet(
        database="admin_db",
        collection="admin_users",
        natural_key=("username",),
        records=[admin.to_mongo()],
        timestamps=("createdAt", "updatedAt"),
    )


def load_seeds(db: Database, seed_set: SeedSet) -> SeedResult:
    """Insert each record unless a document with its natural key exists."""
    coll = db[seed_set.collection]
    result = SeedResult(collection=seed_set.collection)
    for record in seed_set.records:
        key = {field: record[field] for field in seed_set.natural_key}
        doc = stamp_document(record, *seed_set.timestamps)
        on_insert = {k: v for k, v in doc.items() if k not in key}
        try:
            res = coll.update_one(key, {"$setOnInsert": on_insert}, upsert=True)
        except DuplicateKeyError:
            # Another unique field already holds this value: already seeded
            logger.debug(f"{db.name}.{seed_set.collection}: {key} conflicts with an existing document")
            result.skipped += 1
            continue
        if res.upserted_id is not None:
            result.inserted += 1
            result.inserted_keys.append(key)
        else:
            result.skipped += 1
    logger.info(
        f"{db.name}.{seed_set.collection}: {result.inserted} seed document(s) inserted, {result.skipped} skipped"
    )
    return result
