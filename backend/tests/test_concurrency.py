"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context (its own DB session), the way
concurrent requests do, and all workers are released together by a barrier.
"""

import threading

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import CashSession, Product, Sale, User
from retailpos.services import cash_session_service, sales_service
from retailpos.validation import ConflictError

WORKERS = 8


@pytest.fixture(scope='function')
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        user = User(username="racer", name="Racer", password_hash="unused", role="cashier", is_active=True)
        product = Product(barcode="RACE-1", name="Race Item", stock_quantity=100, sale_price_cents=100)
        db.session.add_all([user, product])
        db.session.commit()
        app.config["RACE_USER_ID"] = user.id
        app.config["RACE_PRODUCT_ID"] = product.id

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _run_workers(app, target):
    results = []
    errors = []
    lock = threading.Lock()
    barrier = threading.Barrier(WORKERS)

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                value = target()
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_sales_never_lose_a_decrement(file_app):
    user_id = file_app.config["RACE_USER_ID"]
    product_id = file_app.config["RACE_PRODUCT_ID"]

    def sell_one():
        sale = sales_service.complete_sale(
            {"type": "pos_receipt"},
            [{"product_id": product_id, "qty": 1}],
            [{"method": "cash", "amount_cents": 100}],
            user_id=user_id,
        )
        return sale.id

    results, errors = _run_workers(file_app, sell_one)

    assert errors == []
    assert len(set(results)) == WORKERS
    with file_app.app_context():
        assert db.session.get(Product, product_id).stock_quantity == 100 - WORKERS
        assert db.session.query(Sale).count() == WORKERS


def test_stock_floor_lets_exactly_one_oversized_sale_through(file_app):
    user_id = file_app.config["RACE_USER_ID"]
    product_id = file_app.config["RACE_PRODUCT_ID"]
    file_app.config["POS_ALLOW_NEGATIVE_STOCK"] = False
    with file_app.app_context():
        db.session.get(Product, product_id).stock_quantity = 10
        db.session.commit()

    def sell_six():
        sale = sales_service.complete_sale(
            {"type": "pos_receipt"},
            [{"product_id": product_id, "qty": 6}],
            [{"method": "cash", "amount_cents": 600}],
            user_id=user_id,
        )
        return sale.id

    results, errors = _run_workers(file_app, sell_six)

    assert len(results) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, ConflictError) for e in errors)
    with file_app.app_context():
        assert db.session.get(Product, product_id).stock_quantity == 4
        assert db.session.query(Sale).count() == 1


def test_concurrent_open_yields_one_session(file_app):
    user_id = file_app.config["RACE_USER_ID"]

    def open_session():
        session, _created = cash_session_service.open_session(user_id, 1000)
        return session.id

    results, errors = _run_workers(file_app, open_session)

    assert errors == []
    assert len(results) == WORKERS
    assert len(set(results)) == 1
    with file_app.app_context():
        open_sessions = db.session.query(CashSession).filter_by(user_id=user_id, status="open").all()
        assert [s.id for s in open_sessions] == [results[0]]
