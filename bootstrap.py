"""
Schema bootstrapper

Walks the catalog one database at a time: service user, collections,
indexes, then seed documents. Every helper takes the database or collection
it works on explicitly. A failure stops the remaining steps of that database
only; the other databases are still provisioned and the failure is reported.
"""
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import CollectionInvalid, OperationFailure, PyMongoError

from catalog import CATALOG, DatabaseSpec, IndexSpec
from config import Settings
from credentials import CredentialStore, generate_password, hash_password
from seed import SeedResult, SeedSet, admin_seed, load_seeds, reference_seeds

ADMIN_DATABASE = "admin_db"

# IndexOptionsConflict, IndexKeySpecsConflict
INDEX_CONFLICT_CODES = {85, 86}


# ---------------------- Errors ----------------------

class BootstrapError(Exception):
    pass


class IndexConflictError(BootstrapError):
    def __init__(self, database: str, collection: str, index_name: str, existing, requested):
        self.database = database
        self.collection = collection
        self.index_name = index_name
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"Index conflict on {database}.{collection} index '{index_name}': "
            f"existing {existing}, requested {requested}"
        )


class ProvisioningError(BootstrapError):
    """A step of one database failed; cause holds the original error."""

    def __init__(self, database: str, step: Optional[str], collection: Optional[str], cause: Exception):
        self.database = database
        self.step = step
        self.collection = collection
        self.cause = cause
        where = f" on collection {collection}" if collection else ""
        super().__init__(f"{database}: step '{step}' failed{where}: {cause}")


# ---------------------- Reports ----------------------

class DatabaseReport(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    database: str
    completed_steps: List[str] = Field(default_factory=list)
    user_created: Optional[bool] = None
    collections_created: List[str] = Field(default_factory=list)
    indexes_created: List[str] = Field(default_factory=list)
    seeds: List[SeedResult] = Field(default_factory=list)
    failed_step: Optional[str] = None
    failed_collection: Optional[str] = None
    error: Optional[str] = None
    failure: Optional[ProvisioningError] = Field(None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def last_step(self) -> Optional[str]:
        return self.completed_steps[-1] if self.completed_steps else None

    def complete(self, step: str) -> None:
        self.completed_steps.append(step)
        logger.info(f"{self.database}: {step} done")


class BootstrapReport(BaseModel):
    databases: List[DatabaseReport] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(d.ok for d in self.databases)

    @property
    def failed(self) -> List[DatabaseReport]:
        return [d for d in self.databases if not d.ok]

    def seed_totals(self) -> Dict[str, int]:
        inserted = sum(s.inserted for d in self.databases for s in d.seeds)
        skipped = sum(s.skipped for d in self.databases for s in d.seeds)
        return {"inserted": inserted, "skipped": skipped}


# ---------------------- Steps ----------------------

def ensure_service_user(db: Database, spec: DatabaseSpec, password: str) -> bool:
    """Create the service user unless it already exists. Returns True when created."""
    info = db.command("usersInfo", spec.username)
    if info.get("users"):
        logger.info(f"{db.name}: user {spec.username} already exists")
        return False
    db.command("createUser", spec.username, pwd=password, roles=spec.roles())
    logger.info(f"{db.name}: created user {spec.username}")
    return True


def ensure_collection(db: Database, name: str) -> bool:
    if name in db.list_collection_names():
        return False
    try:
        db.create_collection(name)
    except CollectionInvalid:
        # created concurrently
        return False
    logger.info(f"{db.name}: created collection {name}")
    return True


def _normalize_key(key) -> list:
    return [(field, d if isinstance(d, str) else int(d)) for field, d in key]


def _definition(info: dict) -> dict:
    ttl = info.get("expireAfterSeconds")
    return {
        "key": _normalize_key(info["key"]),
        "unique": bool(info.get("unique", False)),
        "expireAfterSeconds": int(ttl) if ttl is not None else None,
    }


def _requested(spec: IndexSpec) -> dict:
    return {
        "key": _normalize_key(spec.keys),
        "unique": spec.unique,
        "expireAfterSeconds": spec.expire_after_seconds,
    }


def ensure_index(collection: Collection, spec: IndexSpec) -> bool:
    """Create the index unless an equivalent one exists. Returns True when created.

    An index sharing the name or the keys but with different options is a
    conflict the operator has to resolve by hand.
    """
    requested = _requested(spec)
    for name, info in collection.index_information().items():
        current = _definition(info)
        if name != spec.name and current["key"] != requested["key"]:
            continue
        if current == requested:
            return False
        raise IndexConflictError(collection.database.name, collection.name, name, current, requested)

    try:
        collection.create_index(spec.keys, **spec.options())
    except OperationFailure as e:
        if e.code in INDEX_CONFLICT_CODES:
            raise IndexConflictError(
                collection.database.name, collection.name, spec.name, e.details, requested
            ) from e
        raise
    logger.info(f"{collection.database.name}.{collection.name}: created index {spec.name}")
    return True


def _run_seed(db: Database, seed_set: SeedSet, report: DatabaseReport) -> SeedResult:
    result = load_seeds(db, seed_set)
    report.seeds.append(result)
    report.complete(f"seed {seed_set.collection}")
    return result


def bootstrap_database(
    client: MongoClient, spec: DatabaseSpec, settings: Settings, store: CredentialStore
) -> DatabaseReport:
    db = client[spec.name]
    report = DatabaseReport(database=spec.name)
    step = None
    coll_name = None
    logger.info(f"Provisioning {spec.name} ({spec.service} service)")

    try:
        if settings.create_users:
            step = "user"
            supplied = settings.service_passwords.get(spec.name)
            password = supplied or generate_password()
            report.user_created = ensure_service_user(db, spec, password)
            if report.user_created and not supplied:
                store.record(spec.username, spec.username, password, spec.name)
            report.complete("user")

        step = "collections"
        for cs in spec.collections:
            coll_name = cs.name
            if ensure_collection(db, cs.name):
                report.collections_created.append(cs.name)
            report.complete(f"collection {cs.name}")

        step = "indexes"
        for cs in spec.collections:
            coll_name = cs.name
            for ix in cs.indexes:
                if ensure_index(db[cs.name], ix):
                    report.indexes_created.append(f"{cs.name}.{ix.name}")
            report.complete(f"indexes {cs.name}")

        step = "seed"
        for seed_set in reference_seeds():
            if seed_set.database == spec.name:
                coll_name = seed_set.collection
                _run_seed(db, seed_set, report)

        if spec.name == ADMIN_DATABASE:
            coll_name = "admin_users"
            password = settings.admin_password or generate_password()
            seed_set = admin_seed(settings.admin_username, settings.admin_email, hash_password(password))
            result = _run_seed(db, seed_set, report)
            if result.inserted and not settings.admin_password:
                store.record("admin_user", settings.admin_username, password, spec.name)
    except (PyMongoError, BootstrapError, ValidationError) as e:
        failure = ProvisioningError(spec.name, step, coll_name, e)
        report.failure = failure
        report.failed_step = step
        report.failed_collection = coll_name
        report.error = str(failure)
        logger.error(f"{failure}. Last completed step: {report.last_step or 'none'}")
        return report

    logger.success(f"{spec.name} provisioned")
    return report


def run_bootstrap(
    client: MongoClient, settings: Settings, store: Optional[CredentialStore] = None
) -> BootstrapReport:
    store = store or CredentialStore(settings.credentials_file)
    report = BootstrapReport()
    try:
        for spec in CATALOG:
            report.databases.append(bootstrap_database(client, spec, settings, store))
    finally:
        store.flush()

    totals = report.seed_totals()
    if report.ok:
        logger.success(
            f"All {len(report.databases)} databases initialized "
            f"({totals['inserted']} seed document(s) inserted, {totals['skipped']} skipped)"
        )
    else:
        names = ", ".join(d.database for d in report.failed)
        logger.error(f"Bootstrap finished with failures in: {names}")
    return report


def verify(client: MongoClient) -> Dict[str, dict]:
    """Report missing collections and indexes per database without changing anything."""
    status = {}
    for spec in CATALOG:
        db = client[spec.name]
        existing = db.list_collection_names()
        missing_collections = []
        missing_indexes = []
        for cs in spec.collections:
            if cs.name not in existing:
                missing_collections.append(cs.name)
                missing_indexes.extend(f"{cs.name}.{ix.name}" for ix in cs.indexes)
                continue
            present = [_definition(info) for info in db[cs.name].index_information().values()]
            for ix in cs.indexes:
                if _requested(ix) not in present:
                    missing_indexes.append(f"{cs.name}.{ix.name}")
        status[spec.name] = {
            "collections": sorted(existing),
            "missing_collections": missing_collections,
            "missing_indexes": missing_indexes,
        }
    return status
