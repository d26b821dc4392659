import mongomock
import pytest

from config import Settings


@pytest.fixture
def client():
    return mongomock.MongoClient()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        create_users=False,
        credentials_file=str(tmp_path / "credentials.json"),
        admin_password="s3cret-admin",
    )
