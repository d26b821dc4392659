import argparse
import os
import sys
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pymongo import MongoClient
from pymongo.errors import ConfigurationError, ConnectionFailure, OperationFailure

from bootstrap import run_bootstrap, verify
from config import Settings
from database import connect, get_client

app = FastAPI(title="Transport Ticketing - Database Bootstrap")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": "Ticketing database bootstrap running"}


@app.get("/test")
def test_database(client: Optional[MongoClient] = Depends(get_client)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "connection_status": "Not Connected",
        "databases": {},
    }
    if client is None:
        response["database"] = "⚠️ Available but not initialized"
        return response
    try:
        status = verify(client)
        response["connection_status"] = "Connected"
        response["databases"] = status
        incomplete = [
            name for name, s in status.items() if s["missing_collections"] or s["missing_indexes"]
        ]
        if incomplete:
            response["database"] = f"⚠️ Connected but not provisioned: {', '.join(incomplete)}"
        else:
            response["database"] = "✅ Connected & Provisioned"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# -------- CLI --------

def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Provision databases, service users, indexes and seed data for the ticketing platform"
    )
    parser.add_argument("command", nargs="?", choices=["bootstrap", "serve"], default="bootstrap")
    parser.add_argument("--url", help="MongoDB connection string (default: $DATABASE_URL)")
    parser.add_argument("--skip-users", action="store_true", help="Do not create per-service users")
    parser.add_argument("--verify-only", action="store_true", help="Only report missing collections and indexes")
    return parser


def run(argv=None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        # pydantic's ValidationError is a ValueError
        settings = settings or Settings.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    if args.url:
        settings = settings.model_copy(update={"database_url": args.url})
    if args.skip_users:
        settings = settings.model_copy(update={"create_users": False})
    try:
        configure_logging(settings.log_level)
    except ValueError as e:
        logger.add(sys.stderr, level="INFO")
        logger.error(f"Invalid LOG_LEVEL {settings.log_level!r}: {e}")
        return 1

    if args.command == "serve":
        import uvicorn
        uvicorn.run(app, host="0.0.0.0", port=settings.port)
        return 0

    try:
        client = connect(settings)
    except ConfigurationError as e:
        logger.error(f"Invalid MongoDB connection string: {e}")
        return 1
    except (ConnectionFailure, OperationFailure) as e:
        logger.error(f"Cannot connect to MongoDB: {e}")
        return 1

    try:
        if args.verify_only:
            status = verify(client)
            missing = False
            for name, s in status.items():
                if s["missing_collections"] or s["missing_indexes"]:
                    missing = True
                    logger.warning(
                        f"{name}: missing collections {s['missing_collections']}, indexes {s['missing_indexes']}"
                    )
                else:
                    logger.info(f"{name}: complete")
            return 1 if missing else 0

        report = run_bootstrap(client, settings)
        for d in report.failed:
            logger.error(
                f"{d.database}: failed at '{d.failed_step}'"
                + (f" ({d.failed_collection})" if d.failed_collection else "")
                + f", last completed step: {d.last_step or 'none'}"
            )
        return 0 if report.ok else 1
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(run())
