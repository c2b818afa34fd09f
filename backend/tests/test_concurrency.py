# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency Tests

Concurrent callers hit the same (account, product) balance through request
approvals and order creation. A file database is used so every thread has
its own connection and the database lock actually serializes writers.
"""

import threading

import pytest

from tierstock import create_app
from tierstock.errors import AlreadyDecided, InsufficientStock
from tierstock.extensions import db
from tierstock.models import Account, AccountRole, CustomerOrder, Product, RequestStatus, TransferRequest
from tierstock.services import ledger_service, order_service, request_service, transfer_service

from fakes import FakeCourier, FakePos


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 15}},
        'COURIER_ADAPTER': FakeCourier(),
        'POS_ADAPTER': FakePos(),
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def chain(file_app):
    """HQ with 100 units and two master agents."""
    with file_app.app_context():
        hq = Account(code="HQ", name="Headquarters", role=AccountRole.HQ)
        ma1 = Account(code="MA1", name="Master 1", role=AccountRole.MASTER_AGENT)
        ma2 = Account(code="MA2", name="Master 2", role=AccountRole.MASTER_AGENT)
        product = Product(sku="ZP250", name="Zaitun 250ml")
        db.session.add_all([hq, ma1, ma2, product])
        db.session.commit()
        transfer_service.receive_stock(hq.id, product.id, 100)
        ids = {"hq": hq.id, "ma1": ma1.id, "ma2": ma2.id, "product": product.id}
        db.session.remove()
    return ids


def _run_concurrently(app, calls):
    """Start every call at once; returns (results, errors) in call order."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)
    errors = [None] * len(calls)

    def worker(index, func):
        with app.app_context():
            try:
                barrier.wait()
                results[index] = func()
            except Exception as exc:
                errors[index] = exc
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, f)) for i, f in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


class TestConcurrentApprovals:
    def test_scenario_c_two_approvals_against_one_balance(self, file_app, chain):
        with file_app.app_context():
            first = request_service.create_request(
                requester_account_id=chain["ma1"], fulfiller_account_id=chain["hq"],
                product_id=chain["product"], quantity=60,
            ).id
            second = request_service.create_request(
                requester_account_id=chain["ma2"], fulfiller_account_id=chain["hq"],
                product_id=chain["product"], quantity=60,
            ).id
            db.session.remove()

        _, errors = _run_concurrently(file_app, [
            lambda: request_service.approve_request(first).id,
            lambda: request_service.approve_request(second).id,
        ])

        failures = [e for e in errors if e is not None]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStock)

        with file_app.app_context():
            assert ledger_service.get_balance(chain["hq"], chain["product"]) == 40
            received = sorted(
                ledger_service.get_balance(chain[key], chain["product"]) for key in ("ma1", "ma2")
            )
            assert received == [0, 60]
            statuses = sorted(r.status.value for r in db.session.query(TransferRequest).all())
            assert statuses == [RequestStatus.APPROVED.value, RequestStatus.PENDING.value]
            assert ledger_service.total_quantity(chain["product"]) == 100

    def test_same_request_approved_twice_concurrently(self, file_app, chain):
        with file_app.app_context():
            request_id = request_service.create_request(
                requester_account_id=chain["ma1"], fulfiller_account_id=chain["hq"],
                product_id=chain["product"], quantity=10,
            ).id
            db.session.remove()

        _, errors = _run_concurrently(file_app, [
            lambda: request_service.approve_request(request_id).id,
            lambda: request_service.approve_request(request_id).id,
        ])

        failures = [e for e in errors if e is not None]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyDecided)

        with file_app.app_context():
            assert ledger_service.get_balance(chain["hq"], chain["product"]) == 90
            assert ledger_service.get_balance(chain["ma1"], chain["product"]) == 10


class TestConcurrentSales:
    def test_oversell_is_impossible(self, file_app, chain):
        with file_app.app_context():
            transfer_service.transfer(chain["hq"], chain["ma1"], chain["product"], 5)
            db.session.remove()

        def sell():
            return order_service.create_order(
                seller_account_id=chain["ma1"],
                product_id=chain["product"],
                quantity=1,
                payment_method="Cash",
                unit_price_cents=3900,
            ).order_number

        results, errors = _run_concurrently(file_app, [sell] * 8)

        sold = [r for r in results if r is not None]
        assert len(sold) == 5
        assert len(set(sold)) == 5
        assert all(isinstance(e, InsufficientStock) for e in errors if e is not None)

        with file_app.app_context():
            assert ledger_service.get_balance(chain["ma1"], chain["product"]) == 0
            assert db.session.query(CustomerOrder).count() == 5
