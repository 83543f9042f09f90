"""
Courses réelles sur PostgreSQL (TEST_DATABASE_URL=postgresql+psycopg://...).

SQLite en mémoire partage une seule connexion et ignore FOR UPDATE :
ces tests n'ont de sens que contre un vrai serveur.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest
from sqlalchemy import func, select

from stockledger.app.core.errors import Conflict, InsufficientStock
from stockledger.app.db.models.core_types import POStatus
from stockledger.app.db.models.models_v1 import PurchaseOrder, StockMovement
from stockledger.services.inventory import record_movement
from stockledger.services.procurement import (
    OrderLineInput,
    create_purchase_order,
    transition_purchase_order,
)

from conftest import TEST_DATABASE_URL, make_article, make_supplier, make_user, stock_of

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        not TEST_DATABASE_URL.startswith("postgresql"),
        reason="needs TEST_DATABASE_URL pointing at PostgreSQL",
    ),
]


def _race(session_factory, n, task):
    """Lance `task(db)` dans n threads synchronisés ; renvoie les issues."""
    barrier = Barrier(n, timeout=30)

    def run(_i):
        db = session_factory()
        try:
            barrier.wait()
            return task(db)
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=n) as executor:
        return [f.result() for f in [executor.submit(run, i) for i in range(n)]]


def test_concurrent_salidas_never_overdraw(session_factory, db_session):
    user = make_user(db_session)
    art = make_article(db_session, user=user, quantity=10)
    article_id, user_id = art.id, user.id

    def withdraw(db):
        try:
            record_movement(db, article_id=article_id, movement_type="salida", quantity=7, user_id=user_id)
            return "ok"
        except InsufficientStock:
            return "insufficient"

    outcomes = _race(session_factory, 2, withdraw)

    assert sorted(outcomes) == ["insufficient", "ok"]
    assert stock_of(db_session, article_id) == 3
    assert db_session.execute(
        select(func.count(StockMovement.id)).where(StockMovement.article_id == article_id)
    ).scalar_one() == 2


def test_concurrent_first_entradas_both_apply(session_factory, db_session):
    user = make_user(db_session)
    art = make_article(db_session)
    article_id, user_id = art.id, user.id

    def receive(db):
        record_movement(db, article_id=article_id, movement_type="entrada", quantity=3, user_id=user_id)
        return "ok"

    outcomes = _race(session_factory, 4, receive)

    assert outcomes == ["ok"] * 4
    assert stock_of(db_session, article_id) == 12


def test_concurrent_receipts_post_lines_once(session_factory, db_session):
    user = make_user(db_session)
    supplier = make_supplier(db_session)
    a = make_article(db_session, supplier=supplier)
    b = make_article(db_session, supplier=supplier)
    po = create_purchase_order(
        db_session,
        supplier_id=supplier.id,
        order_number="OC-RACE",
        lines=[OrderLineInput(a.id, 5), OrderLineInput(b.id, 3)],
        user_id=user.id,
    )
    order_id, user_id, a_id, b_id = po.id, user.id, a.id, b.id

    def receive(db):
        try:
            transition_purchase_order(db, order_id=order_id, target=POStatus.recibida, user_id=user_id)
            return "received"
        except Conflict:
            return "conflict"

    outcomes = _race(session_factory, 3, receive)

    assert sorted(outcomes) == ["conflict", "conflict", "received"]
    assert stock_of(db_session, a_id) == 5
    assert stock_of(db_session, b_id) == 3
    assert db_session.execute(select(func.count(StockMovement.id))).scalar_one() == 2
    assert db_session.get(PurchaseOrder, order_id).status is POStatus.recibida
