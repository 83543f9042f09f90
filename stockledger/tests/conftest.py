import os
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.app.api.deps import get_app_settings, get_db
from stockledger.app.core.config import Settings
from stockledger.app.db.base import Base
from stockledger.app.db.models.core_types import MovementType, Role
from stockledger.app.db.models.models_v1 import Article, StockLevel, Supplier, User
from stockledger.app.main import create_app
from stockledger.services.authz import load_policy
from stockledger.services.inventory import record_movement

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

_seq = count(1)


@pytest.fixture(scope="function")
def engine():
    """
    Base isolée par test.

    SQLite en mémoire par défaut (une seule connexion partagée),
    ou TEST_DATABASE_URL pour jouer la suite contre PostgreSQL.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        eng = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(eng, "connect")
        def _fk_on(dbapi_conn, _record):
            dbapi_conn.execute("PRAGMA foreign_keys=ON")
    else:
        eng = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        permissions_file=None,
        allow_negative_stock=False,
        log_level="WARNING",
        log_json=False,
    )


@pytest.fixture(scope="function")
def client(session_factory, settings):
    app = create_app(settings=settings, policy=load_policy())

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_app_settings] = lambda: settings
    with TestClient(app) as c:
        yield c


# ---------- Factories ----------
def make_user(db: Session, role: Role = Role.admin, active: bool = True) -> User:
    n = next(_seq)
    user = User(name=f"TEST-USER-{n}", email=f"user{n}@test.local", role=role, active=active)
    db.add(user)
    db.commit()
    return user


def make_supplier(db: Session, active: bool = True) -> Supplier:
    n = next(_seq)
    supplier = Supplier(code=f"PRV-{n}", name=f"TEST-SUP-{n}", active=active)
    db.add(supplier)
    db.commit()
    return supplier


def make_article(
    db: Session,
    *,
    name: str | None = None,
    category: str = "general",
    supplier: Supplier | None = None,
    user: User | None = None,
    quantity: int = 0,
    min_stock: int | None = None,
    max_stock: int | None = None,
) -> Article:
    """Article + niveau initial via une entrada, jamais en écrivant la quantité."""
    n = next(_seq)
    article = Article(
        code=f"ART-{n}",
        name=name or f"TEST-ART-{n}",
        category=category,
        supplier_id=supplier.id if supplier else None,
    )
    db.add(article)
    db.commit()

    if quantity > 0:
        actor = user or make_user(db)
        record_movement(
            db,
            article_id=article.id,
            movement_type=MovementType.entrada,
            quantity=quantity,
            user_id=actor.id,
            reason="Stock inicial",
        )

    if min_stock is not None or max_stock is not None:
        sl = db.get(StockLevel, article.id)
        if not sl:
            sl = StockLevel(article_id=article.id, quantity=0)
            db.add(sl)
        sl.min_stock = min_stock
        sl.max_stock = max_stock
        db.commit()

    return article


def stock_of(db: Session, article_id: int) -> int | None:
    db.expire_all()
    sl = db.get(StockLevel, article_id)
    return sl.quantity if sl else None


def auth(user: User) -> dict:
    return {"X-User-Id": str(user.id)}
