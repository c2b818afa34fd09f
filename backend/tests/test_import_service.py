# Overview: Pytest coverage for the reconciling point-of-sale importer.

from datetime import date, datetime

import pytest

from tierstock.adapters import ExternalCustomer, ExternalLineItem, ExternalTransaction
from tierstock.errors import ExternalServiceUnavailable, NotFound, RequestError
from tierstock.models import Customer, CustomerOrder, DeliveryStatus, PaymentMethod, Platform, StockMovement
from tierstock.services import import_service, ledger_service


def _tx(invoice, *lines, cancelled=False, payment="Cash", customer=None):
    return ExternalTransaction(
        invoice_number=invoice,
        lines=list(lines),
        cancelled=cancelled,
        payment_label=payment,
        customer=customer,
    )


def _line(index, name, quantity=1, total_cents=3900, sku=None):
    return ExternalLineItem(line_index=index, product_name=name, quantity=quantity, total_cents=total_cents, sku=sku)


class TestImportBatch:
    def test_imports_lines_as_shipped_orders(self, db_session, agent, product):
        summary = import_service.import_batch(
            agent.id,
            [_tx("INV-1", _line(0, "Zaitun 250ml", quantity=2, total_cents=7800, sku="ZP250"))],
            sync_date=date(2024, 6, 1),
        )

        assert summary.imported == 1
        order = db_session.get(CustomerOrder, summary.order_ids[0])
        assert order.delivery_status is DeliveryStatus.SHIPPED
        assert order.platform is Platform.STOREHUB
        assert order.product_id == product.id
        assert order.quantity == 2
        assert order.unit_price_cents == 3900
        assert order.date_order == date(2024, 6, 1)
        assert order.date_processed == date(2024, 6, 1)
        assert (order.source_invoice_number, order.source_line_index) == ("INV-1", 0)

    def test_imported_orders_never_touch_the_ledger(self, db_session, agent, product, seed_stock):
        seed_stock(agent, product, 10)

        import_service.import_batch(agent.id, [_tx("INV-2", _line(0, "Zaitun 250ml", quantity=4))])

        assert ledger_service.get_balance(agent.id, product.id) == 10
        assert db_session.query(StockMovement).filter(StockMovement.customer_order_id.isnot(None)).count() == 0

    def test_scenario_d_second_import_is_duplicate(self, db_session, agent, product):
        batch = [_tx("INV-3", _line(0, "Zaitun 250ml"), _line(1, "Zaitun 250ml"))]

        first = import_service.import_batch(agent.id, batch)
        second = import_service.import_batch(agent.id, batch)

        assert (first.imported, first.skipped_duplicate) == (2, 0)
        assert (second.imported, second.skipped_duplicate) == (0, 2)
        assert db_session.query(CustomerOrder).filter_by(source_invoice_number="INV-3").count() == 2

    def test_reimport_adds_only_new_lines(self, db_session, agent, product):
        import_service.import_batch(agent.id, [_tx("INV-4", _line(0, "Zaitun 250ml"))])

        summary = import_service.import_batch(
            agent.id, [_tx("INV-4", _line(0, "Zaitun 250ml"), _line(1, "Zaitun 250ml"))]
        )

        assert (summary.imported, summary.skipped_duplicate) == (1, 1)

    def test_same_invoice_for_another_seller_is_not_duplicate(self, db_session, agent, master_agent, product):
        batch = [_tx("INV-5", _line(0, "Zaitun 250ml"))]
        import_service.import_batch(agent.id, batch)

        summary = import_service.import_batch(master_agent.id, batch)

        assert summary.imported == 1

    def test_cancelled_transactions_are_counted_not_written(self, db_session, agent, product):
        summary = import_service.import_batch(
            agent.id,
            [
                _tx("INV-6", _line(0, "Zaitun 250ml"), cancelled=True),
                _tx("INV-7", _line(0, "Zaitun 250ml")),
            ],
        )

        assert summary.skipped_cancelled == 1
        assert summary.imported == 1
        assert db_session.query(CustomerOrder).filter_by(source_invoice_number="INV-6").count() == 0

    def test_excluded_fee_lines(self, db_session, agent, product):
        summary = import_service.import_batch(
            agent.id, [_tx("INV-8", _line(0, "Zaitun 250ml"), _line(1, "cod", total_cents=500))]
        )

        assert summary.imported == 1
        assert summary.skipped_excluded == 1

    def test_custom_exclusion_list(self, db_session, agent, product):
        summary = import_service.import_batch(
            agent.id,
            [_tx("INV-9", _line(0, "Zaitun 250ml"), _line(1, "Shipping Fee", total_cents=800))],
            excluded_names=["Shipping Fee"],
        )
        assert (summary.imported, summary.skipped_excluded) == (1, 1)

    def test_idempotence_with_mixed_batch(self, db_session, agent, product):
        batch = [
            _tx("INV-10", _line(0, "Zaitun 250ml"), _line(1, "COD", total_cents=500)),
            _tx("INV-11", _line(0, "Zaitun 250ml"), cancelled=True),
            _tx("INV-12", _line(0, "Unknown thing", sku="XYZ")),
        ]

        first = import_service.import_batch(agent.id, batch)
        orders_after_first = sorted(o.id for o in db_session.query(CustomerOrder).all())
        second = import_service.import_batch(agent.id, batch)

        assert first.imported == 2
        assert second.imported == 0
        assert second.skipped_duplicate == 2
        assert second.skipped_cancelled == first.skipped_cancelled == 1
        assert second.skipped_excluded == first.skipped_excluded == 1
        assert sorted(o.id for o in db_session.query(CustomerOrder).all()) == orders_after_first

    def test_unknown_seller(self, db_session):
        with pytest.raises(NotFound):
            import_service.import_batch(555555, [])


class TestCustomersAndPayments:
    def test_walk_in_customer_is_shared(self, db_session, agent, product):
        import_service.import_batch(
            agent.id, [_tx("INV-20", _line(0, "Zaitun 250ml")), _tx("INV-21", _line(0, "Zaitun 250ml"))]
        )

        customers = db_session.query(Customer).filter_by(owner_account_id=agent.id).all()
        assert len(customers) == 1
        assert customers[0].phone == import_service.WALK_IN_PHONE

    def test_named_customer_is_found_by_phone(self, db_session, agent, product, customer):
        external = ExternalCustomer(name="Siti A.", phone=customer.phone)
        summary = import_service.import_batch(
            agent.id, [_tx("INV-22", _line(0, "Zaitun 250ml"), customer=external)]
        )

        order = db_session.get(CustomerOrder, summary.order_ids[0])
        assert order.customer_id == customer.id

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("Cash", PaymentMethod.CASH),
            ("Credit Card", PaymentMethod.ONLINE_TRANSFER),
            ("GrabPay", PaymentMethod.ONLINE_TRANSFER),
            ("COD", PaymentMethod.COD),
            ("Delivery", PaymentMethod.COD),
            (None, PaymentMethod.CASH),
        ],
    )
    def test_map_payment_method(self, label, expected):
        assert import_service.map_payment_method(label) is expected


class TestProductMatching:
    def test_strip_quantity_suffix(self):
        assert import_service.strip_quantity_suffix("ZP250-6") == "ZP250"
        assert import_service.strip_quantity_suffix("ZP250") == "ZP250"
        assert import_service.strip_quantity_suffix("ZP-A") == "ZP-A"

    def test_sku_with_suffix_matches(self, db_session, product, other_product):
        line = _line(0, "Something else", sku="ZP500-3")
        assert import_service.match_product(line, [product, other_product]) is other_product

    def test_name_containment_matches(self, db_session, product):
        line = _line(0, "ZAITUN 250ML (promo)")
        assert import_service.match_product(line, [product]) is product

    def test_bundle_sku_is_unmatched(self, db_session, product, other_product):
        line = _line(0, "Zaitun 250ml", sku="ZP250 + ZP500")
        assert import_service.match_product(line, [product, other_product]) is None

    def test_unmatched_line_keeps_raw_name(self, db_session, agent, product):
        summary = import_service.import_batch(agent.id, [_tx("INV-30", _line(0, "Mystery Box", sku="MB-1"))])

        order = db_session.get(CustomerOrder, summary.order_ids[0])
        assert order.product_id is None
        assert order.source_product_name == "Mystery Box"
        assert order.source_sku == "MB-1"


class TestSyncAndPayload:
    def test_sync_from_pos(self, db_session, pos, agent, product):
        day = date(2024, 6, 1)
        pos.by_day[day] = [_tx("INV-40", _line(0, "Zaitun 250ml"))]

        summary = import_service.sync_from_pos(agent.id, day)
        again = import_service.sync_from_pos(agent.id, day)

        assert summary.imported == 1
        assert again.skipped_duplicate == 1

    def test_sync_failure_writes_nothing(self, db_session, pos, agent):
        pos.fail = True
        with pytest.raises(ExternalServiceUnavailable):
            import_service.sync_from_pos(agent.id, date(2024, 6, 1))
        assert db_session.query(CustomerOrder).count() == 0

    def test_order_date_from_transaction_time(self, db_session, agent, product):
        tx = ExternalTransaction(
            invoice_number="INV-41",
            lines=[_line(0, "Zaitun 250ml")],
            transaction_time=datetime(2024, 5, 31, 20, 30),
        )
        summary = import_service.import_batch(agent.id, [tx])

        # 20:30 UTC is the next morning at UTC+8
        assert db_session.get(CustomerOrder, summary.order_ids[0]).date_order == date(2024, 6, 1)

    def test_transactions_from_payload(self):
        transactions = import_service.transactions_from_payload([
            {
                "invoice_number": "INV-50",
                "payment_method": "Cash",
                "customer": {"name": "Ali", "phone": "0111"},
                "lines": [
                    {"product_name": "Zaitun 250ml", "quantity": 2, "total_cents": 7800},
                    {"line_index": 3, "product_name": "COD", "total_cents": 500},
                ],
            }
        ])

        tx = transactions[0]
        assert tx.invoice_number == "INV-50"
        assert [line.line_index for line in tx.lines] == [0, 3]
        assert tx.lines[1].quantity == 1
        assert tx.customer.phone == "0111"

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [{"lines": []}],
            [{"invoice_number": "X", "lines": [{"product_name": "A"}]}],
            [{"invoice_number": "X", "lines": [{"product_name": "A", "total_cents": "12"}]}],
            [{"invoice_number": "X", "lines": ["oops"]}],
            [{"invoice_number": "X", "lines": "oops"}],
            [{"invoice_number": "X", "lines": [{"product_name": "A", "total_cents": 100, "unit_price_cents": "abc"}]}],
            [{"invoice_number": "X", "lines": [{"product_name": "A", "total_cents": 100, "unit_price_cents": -5}]}],
            [{"invoice_number": "X", "lines": [{"product_name": "A", "total_cents": 100, "quantity": 0}]}],
            [{"invoice_number": "X", "lines": [{"product_name": "A", "total_cents": -100}]}],
            [{"invoice_number": "X", "customer": "Ali", "lines": []}],
        ],
    )
    def test_invalid_payload(self, payload):
        with pytest.raises(RequestError):
            import_service.transactions_from_payload(payload)

    def test_unit_price_is_kept_when_valid(self, db_session, agent, product):
        transactions = import_service.transactions_from_payload([
            {
                "invoice_number": "INV-60",
                "lines": [{"product_name": "Zaitun 250ml", "quantity": 2, "total_cents": 7000, "unit_price_cents": 3500}],
            }
        ])

        summary = import_service.import_batch(agent.id, transactions)

        order = db_session.get(CustomerOrder, summary.order_ids[0])
        assert order.unit_price_cents == 3500
        assert order.total_price_cents == 7000
