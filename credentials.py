import json
import os
import secrets
import tempfile
from typing import Dict

from loguru import logger
from passlib.context import CryptContext

# Use pbkdf2_sha256 to avoid bcrypt build/runtime issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def generate_password() -> str:
    return secrets.token_urlsafe(24)


class CredentialStore:
    """Collects credentials created during a run and writes them once.

    The file is created with mode 0600 and merged with whatever an earlier
    run left there, so a re-run that creates nothing leaves it untouched.
    """

    def __init__(self, path: str):
        self.path = path
        self.created: Dict[str, Dict[str, str]] = {}

    def record(self, key: str, username: str, password: str, database: str) -> None:
        self.created[key] = {"username": username, "password": password, "database": database}

    def flush(self) -> bool:
        if not self.created:
            return False
        existing = {}
        if os.path.exists(self.path):
            with open(self.path, "r", encoding="utf-8") as fh:
                existing = json.load(fh)
        existing.update(self.created)

        # mkstemp creates the file 0600; secrets never land under a looser mode
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(os.path.abspath(self.path)), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(existing, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info(f"Wrote {len(self.created)} new credential(s) to {self.path}")
        self.created = {}
        return True
