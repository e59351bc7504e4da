import os

# Keep the application engine off the production database during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_marketplace_app.db")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketplace.core.database import Base
from marketplace.core.security import Actor, Role
from marketplace.services.notifications import RecordingNotifier
from marketplace.tests.factories import (
    ADMIN_ID, CUSTOMER_ID, OTHER_CUSTOMER_ID, VENDOR_1_ID, VENDOR_2_ID, Catalog,
)


@pytest.fixture
def test_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def catalog(test_db):
    return Catalog(test_db)

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def admin():
    return Actor(user_id=ADMIN_ID, role=Role.ADMIN)

@pytest.fixture
def vendor():
    return Actor(user_id=VENDOR_1_ID, role=Role.VENDOR)

@pytest.fixture
def other_vendor():
    return Actor(user_id=VENDOR_2_ID, role=Role.VENDOR)

@pytest.fixture
def customer():
    return Actor(user_id=CUSTOMER_ID, role=Role.CUSTOMER)

@pytest.fixture
def other_customer():
    return Actor(user_id=OTHER_CUSTOMER_ID, role=Role.CUSTOMER)
