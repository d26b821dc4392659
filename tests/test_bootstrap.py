import json
from unittest.mock import MagicMock

import pytest
from mongomock import DuplicateKeyError
from pydantic import ValidationError
from pymongo.errors import OperationFailure

import bootstrap
from bootstrap import (
    IndexConflictError,
    ProvisioningError,
    bootstrap_database,
    ensure_collection,
    ensure_index,
    ensure_service_user,
    run_bootstrap,
    verify,
)
from catalog import CATALOG, get_database_spec, index
from credentials import CredentialStore, verify_password


def counts(client):
    return {
        "routes": client["transport_db"]["routes"].count_documents({}),
        "ticket_types": client["ticketing_db"]["ticket_types"].count_documents({}),
        "notification_templates": client["notification_db"]["notification_templates"].count_documents({}),
        "admin_users": client["admin_db"]["admin_users"].count_documents({}),
    }


def test_creates_every_collection_and_index(client, settings):
    report = run_bootstrap(client, settings)

    assert report.ok
    for spec in CATALOG:
        names = client[spec.name].list_collection_names()
        for cs in spec.collections:
            assert cs.name in names
            info = client[spec.name][cs.name].index_information()
            for ix in cs.indexes:
                assert ix.name in info
    assert all(not s["missing_collections"] and not s["missing_indexes"] for s in verify(client).values())


def test_seed_counts_after_clean_run(client, settings):
    report = run_bootstrap(client, settings)

    assert counts(client) == {
        "routes": 3,
        "ticket_types": 3,
        "notification_templates": 3,
        "admin_users": 1,
    }
    assert report.seed_totals() == {"inserted": 10, "skipped": 0}


def test_second_run_is_a_no_op(client, settings):
    run_bootstrap(client, settings)
    before = {
        (spec.name, cs.name): client[spec.name][cs.name].index_information()
        for spec in CATALOG
        for cs in spec.collections
    }

    report = run_bootstrap(client, settings)

    assert report.ok
    assert report.seed_totals() == {"inserted": 0, "skipped": 10}
    assert all(not d.collections_created and not d.indexes_created for d in report.databases)
    assert counts(client) == {
        "routes": 3,
        "ticket_types": 3,
        "notification_templates": 3,
        "admin_users": 1,
    }
    after = {
        (spec.name, cs.name): client[spec.name][cs.name].index_information()
        for spec in CATALOG
        for cs in spec.collections
    }
    assert before == after


def test_passenger_email_is_unique(client, settings):
    run_bootstrap(client, settings)
    passengers = client["passenger_db"]["passengers"]
    passengers.insert_one({"email": "ndapewa@example.com", "phoneNumber": "+264811234567"})

    with pytest.raises(DuplicateKeyError):
        passengers.insert_one({"email": "ndapewa@example.com", "phoneNumber": "+264817654321"})


def test_admin_username_and_email_are_unique(client, settings):
    run_bootstrap(client, settings)
    admins = client["admin_db"]["admin_users"]

    with pytest.raises(DuplicateKeyError):
        admins.insert_one({"username": "admin", "email": "other@transport.gov.na"})
    with pytest.raises(DuplicateKeyError):
        admins.insert_one({"username": "other", "email": "admin@transport.gov.na"})


def test_session_ttl_index_expires_immediately(client, settings):
    run_bootstrap(client, settings)
    info = client["passenger_db"]["passenger_sessions"].index_information()

    assert info["expiresAt_1"]["expireAfterSeconds"] == 0


def test_weekly_pass_fields_round_trip(client, settings):
    run_bootstrap(client, settings)
    doc = client["ticketing_db"]["ticket_types"].find_one({"name": "Weekly Pass"})

    assert doc["type"] == "PASS"
    assert doc["validityPeriod"] == 168 and isinstance(doc["validityPeriod"], int)
    assert doc["maxUses"] == -1 and isinstance(doc["maxUses"], int)
    assert doc["priceMultiplier"] == 15.0 and isinstance(doc["priceMultiplier"], float)
    assert doc["isActive"] is True
    assert "createdAt" in doc


def test_admin_password_is_hashed(client, settings):
    run_bootstrap(client, settings)
    admin = client["admin_db"]["admin_users"].find_one({"username": "admin"})

    assert admin["password"] != settings.admin_password
    assert verify_password(settings.admin_password, admin["password"])
    assert admin["permissions"] == ["ALL"]
    assert admin["role"] == "ADMIN"


def test_generated_admin_password_is_written_once(client, settings):
    settings = settings.model_copy(update={"admin_password": None})
    run_bootstrap(client, settings)

    with open(settings.credentials_file) as fh:
        written = json.load(fh)
    admin = client["admin_db"]["admin_users"].find_one({"username": "admin"})
    assert verify_password(written["admin_user"]["password"], admin["password"])

    # Nothing new is created on a re-run, so the file is left alone
    store = CredentialStore(settings.credentials_file)
    run_bootstrap(client, settings, store)
    assert store.created == {}
    with open(settings.credentials_file) as fh:
        assert json.load(fh) == written


def test_index_conflict_isolated_to_its_database(client, settings):
    # Pre-existing non-unique index under the name the catalog wants unique
    client["passenger_db"]["passengers"].create_index("email")

    report = run_bootstrap(client, settings)

    assert not report.ok
    failed = {d.database: d for d in report.failed}
    assert list(failed) == ["passenger_db"]
    passenger = failed["passenger_db"]
    assert passenger.failed_step == "indexes"
    assert passenger.failed_collection == "passengers"
    assert "email_1" in passenger.error
    assert passenger.last_step == "collection passenger_sessions"
    # Unrelated databases were still provisioned
    assert counts(client)["routes"] == 3
    assert counts(client)["admin_users"] == 1


def test_ensure_index_is_no_op_for_equivalent_index(client):
    coll = client["passenger_db"]["passengers"]
    coll.create_index("email", unique=True, name="email_unique")

    assert ensure_index(coll, index("email", unique=True)) is False
    assert "email_1" not in coll.index_information()


def test_ensure_index_rejects_same_keys_with_other_options(client):
    coll = client["admin_db"]["admin_users"]
    coll.create_index("username", name="by_username")

    with pytest.raises(IndexConflictError) as exc:
        ensure_index(coll, index("username", unique=True))
    assert exc.value.database == "admin_db"
    assert exc.value.collection == "admin_users"
    assert exc.value.index_name == "by_username"
    assert exc.value.requested["unique"] is True


def test_server_side_index_conflict_is_wrapped():
    coll = MagicMock()
    coll.name = "trips"
    coll.database.name = "transport_db"
    coll.index_information.return_value = {}
    coll.create_index.side_effect = OperationFailure("Index already exists with a different name", code=85)

    with pytest.raises(IndexConflictError) as exc:
        ensure_index(coll, index("routeId"))
    assert exc.value.collection == "trips"


def test_ensure_collection_only_creates_missing(client):
    db = client["payment_db"]
    assert ensure_collection(db, "payments") is True
    assert ensure_collection(db, "payments") is False


def test_ensure_service_user_creates_when_absent():
    db = MagicMock()
    db.command.return_value = {"users": [], "ok": 1}
    spec = get_database_spec("payment_db")

    assert ensure_service_user(db, spec, "pw") is True
    db.command.assert_called_with(
        "createUser",
        "payment_db_user",
        pwd="pw",
        roles=[{"role": "readWrite", "db": "payment_db"}, {"role": "dbAdmin", "db": "payment_db"}],
    )


def test_ensure_service_user_keeps_existing():
    db = MagicMock()
    db.command.return_value = {"users": [{"user": "payment_db_user"}], "ok": 1}

    assert ensure_service_user(db, get_database_spec("payment_db"), "pw") is False
    db.command.assert_called_once_with("usersInfo", "payment_db_user")


def test_generated_service_password_is_recorded(client, settings, monkeypatch):
    monkeypatch.setattr(bootstrap, "ensure_service_user", lambda db, spec, pw: True)
    settings = settings.model_copy(
        update={"create_users": True, "service_passwords": {"transport_db": "from-vault"}}
    )
    store = CredentialStore(settings.credentials_file)

    passenger = bootstrap_database(client, get_database_spec("passenger_db"), settings, store)
    transport = bootstrap_database(client, get_database_spec("transport_db"), settings, store)

    assert passenger.user_created and transport.user_created
    assert passenger.completed_steps[0] == "user"
    # Supplied passwords are already known to the operator
    assert list(store.created) == ["passenger_db_user"]


def test_user_failure_skips_rest_of_database(client, settings, monkeypatch):
    def refuse(db, spec, pw):
        raise OperationFailure("not authorized on passenger_db to execute command", code=13)

    monkeypatch.setattr(bootstrap, "ensure_service_user", refuse)
    settings = settings.model_copy(update={"create_users": True})

    report = bootstrap_database(
        client, get_database_spec("passenger_db"), settings, CredentialStore(settings.credentials_file)
    )

    assert report.failed_step == "user"
    assert report.last_step is None
    assert "passengers" not in client["passenger_db"].list_collection_names()


def test_seed_conflict_on_other_unique_field_counts_as_skipped(client, settings):
    run_bootstrap(client, settings.model_copy(update={"admin_password": "x"}))
    client["admin_db"]["admin_users"].delete_many({})
    client["admin_db"]["admin_users"].insert_one(
        {"username": "ops", "email": "admin@transport.gov.na", "password": "hash"}
    )

    report = run_bootstrap(client, settings)

    admin_db = [d for d in report.databases if d.database == "admin_db"][0]
    assert admin_db.ok
    assert admin_db.seeds[0].inserted == 0
    assert admin_db.seeds[0].skipped == 1


def test_ensure_index_rejects_same_name_with_other_keys(client):
    coll = client["passenger_db"]["passengers"]
    coll.create_index([("phoneNumber", 1)], name="email_1")

    with pytest.raises(IndexConflictError) as exc:
        ensure_index(coll, index("email", unique=True))
    assert exc.value.index_name == "email_1"
    assert exc.value.existing["key"] == [("phoneNumber", 1)]
    assert exc.value.requested["key"] == [("email", 1)]
    assert "phoneNumber" in str(exc.value) and "email" in str(exc.value)


def test_failed_step_is_recorded_as_provisioning_error(client, settings):
    client["transport_db"]["trips"].create_index("status", unique=True)

    report = run_bootstrap(client, settings)

    transport = report.failed[0]
    assert isinstance(transport.failure, ProvisioningError)
    assert transport.failure.database == "transport_db"
    assert transport.failure.step == "indexes"
    assert transport.failure.collection == "trips"
    assert isinstance(transport.failure.cause, IndexConflictError)
    assert transport.error == str(transport.failure)
    assert "failure" not in transport.model_dump()


def test_invalid_admin_email_fails_only_admin_db(client, settings):
    # model_copy skips validation, like a value that slipped past config loading
    settings = settings.model_copy(update={"admin_email": "admin@transport.local"})

    report = run_bootstrap(client, settings)

    assert [d.database for d in report.failed] == ["admin_db"]
    admin_db = report.failed[0]
    assert admin_db.failed_step == "seed"
    assert admin_db.failed_collection == "admin_users"
    assert isinstance(admin_db.failure.cause, ValidationError)
    assert admin_db.last_step == "indexes service_disruptions"
    assert counts(client)["admin_users"] == 0
    assert counts(client)["routes"] == 3
