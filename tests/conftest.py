from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from order_service.database import create_tables, get_db, make_engine
from order_service.main import app
from order_service.models import MenuItem, User, new_id
from order_service.service import OrderService


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so that separate sessions really use separate connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seeded(session_factory):
    """Two accounts and two menu items, committed and released."""
    ids = SimpleNamespace(
        alice=new_id(),
        bob=new_id(),
        pizza=new_id(),
        attieke=new_id(),
    )
    db = session_factory()
    db.add_all(
        [
            User(user_id=ids.alice, name="Alice", email="alice@example.com", loyalty_points=5),
            User(user_id=ids.bob, name="Bob", email="bob@example.com", loyalty_points=0),
            MenuItem(food_id=ids.pizza, name="Pizza Royale", price=15),
            MenuItem(food_id=ids.attieke, name="Attieke", price=10),
        ]
    )
    db.commit()
    db.close()
    return ids


@pytest.fixture
def db(session_factory, seeded):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def service(db):
    return OrderService(db)


@pytest.fixture
def client(session_factory, seeded):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
