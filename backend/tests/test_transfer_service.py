# Overview: Pytest coverage for the transfer engine (conservation, atomic pairing, notifications).

import pytest

from tierstock.errors import InsufficientStock, InvalidQuantity, NotFound, RequestError
from tierstock.events import balance_changed
from tierstock.models import MovementKind, StockMovement
from tierstock.services import ledger_service, transfer_service


class TestTransfer:
    def test_internal_transfer_moves_stock(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 100)

        result = transfer_service.transfer(hq.id, master_agent.id, product.id, 30)

        assert result.from_balance == 70
        assert result.to_balance == 30
        assert ledger_service.get_balance(hq.id, product.id) == 70
        assert ledger_service.get_balance(master_agent.id, product.id) == 30

        movement = db_session.get(StockMovement, result.movement_id)
        assert movement.kind is MovementKind.TRANSFER
        assert movement.from_balance_after == 70
        assert movement.to_balance_after == 30

    def test_consumption_has_no_credit(self, db_session, hq, product, seed_stock):
        seed_stock(hq, product, 10)

        result = transfer_service.transfer(hq.id, None, product.id, 4)

        assert result.to_account_id is None
        assert result.to_balance is None
        assert result.from_balance == 6
        assert db_session.get(StockMovement, result.movement_id).kind is MovementKind.SALE

    def test_insufficient_stock_credits_nothing(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 100)

        with pytest.raises(InsufficientStock):
            transfer_service.transfer(hq.id, master_agent.id, product.id, 150)

        assert ledger_service.get_balance(hq.id, product.id) == 100
        assert ledger_service.get_balance(master_agent.id, product.id) == 0
        assert db_session.query(StockMovement).filter_by(kind=MovementKind.TRANSFER).count() == 0

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_non_positive_quantity(self, db_session, hq, master_agent, product, quantity):
        with pytest.raises(InvalidQuantity):
            transfer_service.transfer(hq.id, master_agent.id, product.id, quantity)

    def test_same_account_is_rejected(self, db_session, hq, product, seed_stock):
        seed_stock(hq, product, 5)
        with pytest.raises(InvalidQuantity):
            transfer_service.transfer(hq.id, hq.id, product.id, 1)

    def test_unknown_destination(self, db_session, hq, product, seed_stock):
        seed_stock(hq, product, 5)
        with pytest.raises(NotFound):
            transfer_service.transfer(hq.id, 999999, product.id, 1)
        assert ledger_service.get_balance(hq.id, product.id) == 5

    def test_conservation_over_internal_transfers(
        self, db_session, hq, master_agent, agent, branch, marketer, product, seed_stock
    ):
        seed_stock(hq, product, 500)
        before = ledger_service.total_quantity(product.id)

        moves = [
            (hq, master_agent, 120),
            (hq, branch, 80),
            (master_agent, agent, 45),
            (branch, marketer, 30),
            (agent, master_agent, 5),
            (marketer, branch, 10),
        ]
        for source, dest, qty in moves:
            transfer_service.transfer(source.id, dest.id, product.id, qty)

        with pytest.raises(InsufficientStock):
            transfer_service.transfer(agent.id, master_agent.id, product.id, 1000)

        assert ledger_service.total_quantity(product.id) == before
        for account in (hq, master_agent, agent, branch, marketer):
            assert ledger_service.get_balance(account.id, product.id) >= 0


class TestAtomicPairing:
    def test_failure_after_debit_rolls_back_both_sides(
        self, db_session, hq, master_agent, product, seed_stock, monkeypatch
    ):
        """A crash between debit and credit leaves neither side applied."""
        seed_stock(hq, product, 50)
        real_adjust = ledger_service.adjust

        def crash_on_credit(account_id, product_id, delta):
            if delta > 0:
                raise RuntimeError("simulated crash before credit")
            return real_adjust(account_id, product_id, delta)

        monkeypatch.setattr(ledger_service, "adjust", crash_on_credit)

        with pytest.raises(RuntimeError):
            transfer_service.transfer(hq.id, master_agent.id, product.id, 20)

        monkeypatch.undo()
        assert ledger_service.get_balance(hq.id, product.id) == 50
        assert ledger_service.get_balance(master_agent.id, product.id) == 0
        assert db_session.query(StockMovement).filter_by(kind=MovementKind.TRANSFER).count() == 0


class TestNotifications:
    def test_balance_changed_sent_after_commit(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 10)
        received = []

        def listener(sender, account_id, product_id, quantity):
            received.append((account_id, product_id, quantity))

        balance_changed.connect(listener)
        try:
            transfer_service.transfer(hq.id, master_agent.id, product.id, 3)
        finally:
            balance_changed.disconnect(listener)

        assert (hq.id, product.id, 7) in received
        assert (master_agent.id, product.id, 3) in received

    def test_no_notification_when_transfer_fails(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 2)
        received = []

        def listener(sender, **payload):
            received.append(payload)

        balance_changed.connect(listener)
        try:
            with pytest.raises(InsufficientStock):
                transfer_service.transfer(hq.id, master_agent.id, product.id, 3)
        finally:
            balance_changed.disconnect(listener)

        assert received == []

    def test_uncommitted_move_is_not_announced(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 10)
        received = []

        def listener(sender, **payload):
            received.append(payload)

        balance_changed.connect(listener)
        try:
            transfer_service.transfer(hq.id, master_agent.id, product.id, 3, commit=False)
            assert received == []
            db_session.rollback()
        finally:
            balance_changed.disconnect(listener)

        assert received == []
        assert ledger_service.get_balance(hq.id, product.id) == 10


class TestReceiveAndMovements:
    def test_receive_stock_records_movement(self, db_session, hq, product):
        result = transfer_service.receive_stock(hq.id, product.id, 25, note="Batch 42")
        assert result.to_balance == 25
        assert result.from_account_id is None

        movements = transfer_service.list_movements(hq.id)
        assert len(movements) == 1
        assert movements[0].kind is MovementKind.RECEIVE
        assert movements[0].note == "Batch 42"

    def test_list_movements_filters_by_product(self, db_session, hq, master_agent, product, other_product):
        transfer_service.receive_stock(hq.id, product.id, 5)
        transfer_service.receive_stock(hq.id, other_product.id, 5)
        transfer_service.transfer(hq.id, master_agent.id, product.id, 2)

        assert len(transfer_service.list_movements(hq.id)) == 3
        assert len(transfer_service.list_movements(hq.id, product_id=other_product.id)) == 1
        assert len(transfer_service.list_movements(master_agent.id)) == 1


class TestStockOut:
    def test_branch_sends_to_agent(self, db_session, branch, agent, product, seed_stock):
        seed_stock(branch, product, 40)

        result = transfer_service.stock_out(branch.id, agent.id, product.id, 15)

        assert (result.from_balance, result.to_balance) == (25, 15)
        assert ledger_service.get_balance(agent.id, product.id) == 15
        movement = db_session.get(StockMovement, result.movement_id)
        assert movement.kind is MovementKind.TRANSFER
        assert movement.transfer_request_id is None
        assert movement.note == "Direct stock-out"

    def test_hq_sends_to_master_agent_with_note(self, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 10)

        result = transfer_service.stock_out(hq.id, master_agent.id, product.id, 10, note="Launch allocation")

        assert result.from_balance == 0
        assert db_session.get(StockMovement, result.movement_id).note == "Launch allocation"

    def test_upstream_recipient_is_refused(self, db_session, branch, agent, product, seed_stock):
        seed_stock(agent, product, 10)

        with pytest.raises(RequestError):
            transfer_service.stock_out(agent.id, branch.id, product.id, 5)

        assert ledger_service.get_balance(agent.id, product.id) == 10
        assert ledger_service.get_balance(branch.id, product.id) == 0

    def test_master_agent_cannot_skip_to_marketer(self, db_session, master_agent, marketer, product, seed_stock):
        seed_stock(master_agent, product, 10)
        with pytest.raises(RequestError):
            transfer_service.stock_out(master_agent.id, marketer.id, product.id, 1)

    def test_insufficient_stock(self, db_session, branch, agent, product, seed_stock):
        seed_stock(branch, product, 3)

        with pytest.raises(InsufficientStock):
            transfer_service.stock_out(branch.id, agent.id, product.id, 4)

        assert ledger_service.get_balance(branch.id, product.id) == 3
        assert ledger_service.get_balance(agent.id, product.id) == 0

    def test_inactive_product(self, db_session, branch, agent, product, seed_stock):
        seed_stock(branch, product, 5)
        product.is_active = False
        db_session.commit()

        with pytest.raises(RequestError):
            transfer_service.stock_out(branch.id, agent.id, product.id, 1)

    def test_inactive_recipient(self, db_session, branch, agent, product, seed_stock):
        seed_stock(branch, product, 5)
        agent.is_active = False
        db_session.commit()

        with pytest.raises(RequestError):
            transfer_service.stock_out(branch.id, agent.id, product.id, 1)

    def test_same_account(self, db_session, branch, product):
        with pytest.raises(InvalidQuantity):
            transfer_service.stock_out(branch.id, branch.id, product.id, 1)
