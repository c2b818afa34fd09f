# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import date

from tierstock.adapters import ExternalLineItem, ExternalTransaction
from tierstock.models import Account, RequestStatus
from tierstock.services import ledger_service, request_service


class TestAccountCommands:
    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['accounts', 'create', '--code', 'hq', '--name', 'Headquarters', '--role', 'hq'])
        assert result.exit_code == 0, result.output
        assert 'PASS Created account HQ' in result.output

        result = runner.invoke(args=[
            'accounts', 'create', '--code', 'br1', '--name', 'Branch 1', '--role', 'branch', '--sub-role', 'premium',
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=['accounts', 'list', '--role', 'branch'])
        assert 'BR1' in result.output
        assert 'premium' in result.output
        assert 'HQ ' not in result.output

    def test_sub_role_only_for_branches(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            'accounts', 'create', '--code', 'a1', '--name', 'Agent', '--role', 'agent', '--sub-role', 'premium',
        ])
        assert result.exit_code != 0
        assert 'RequestError' in result.output

    def test_delete_refused_while_holding_stock(self, app, db_session, hq, product, seed_stock):
        seed_stock(hq, product, 3)
        result = app.test_cli_runner().invoke(args=['accounts', 'delete', str(hq.id)])
        assert result.exit_code != 0
        assert 'AccountInUse' in result.output

    def test_delete_with_history_deactivates(self, app, db_session, hq, master_agent):
        result = app.test_cli_runner().invoke(args=['accounts', 'delete', str(hq.id)])
        assert result.exit_code == 0, result.output
        assert 'deactivated' in result.output
        db_session.expire_all()
        assert db_session.get(Account, hq.id).is_active is False


class TestProductAndStockCommands:
    def test_create_product_with_prices(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'products', 'create', '--sku', 'ZP250', '--name', 'Zaitun 250ml',
            '--price', 'agent=2500', '--price', 'customer=3900',
        ])
        assert result.exit_code == 0, result.output
        assert 'PASS Created product ZP250' in result.output

    def test_bad_price_option(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            'products', 'create', '--sku', 'ZP1', '--name', 'X', '--price', 'agent',
        ])
        assert result.exit_code != 0
        assert 'tier=cents' in result.output

    def test_receive_and_balance(self, app, db_session, hq, product):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'stock', 'receive', '--account-id', str(hq.id), '--product-id', str(product.id), '--quantity', '500',
        ])
        assert result.exit_code == 0, result.output
        assert 'now holds 500' in result.output
        assert ledger_service.get_balance(hq.id, product.id) == 500

        result = runner.invoke(args=['stock', 'balance', '--account-id', str(hq.id)])
        assert f'product {product.id:>5}: 500' in result.output

    def test_receive_invalid_quantity(self, app, db_session, hq, product):
        result = app.test_cli_runner().invoke(args=[
            'stock', 'receive', '--account-id', str(hq.id), '--product-id', str(product.id), '--quantity', '0',
        ])
        assert result.exit_code != 0
        assert 'InvalidQuantity' in result.output

    def test_stock_transfer_to_downstream(self, app, db_session, branch, agent, product, seed_stock):
        seed_stock(branch, product, 30)
        result = app.test_cli_runner().invoke(args=[
            'stock', 'transfer', '--from-id', str(branch.id), '--to-id', str(agent.id),
            '--product-id', str(product.id), '--quantity', '12',
        ])
        assert result.exit_code == 0, result.output
        assert result.output.startswith('PASS Sent 12')
        assert f'account {agent.id} holds 12' in result.output
        assert ledger_service.get_balance(branch.id, product.id) == 18

    def test_stock_transfer_upstream_fails(self, app, db_session, branch, agent, product, seed_stock):
        seed_stock(agent, product, 5)
        result = app.test_cli_runner().invoke(args=[
            'stock', 'transfer', '--from-id', str(agent.id), '--to-id', str(branch.id),
            '--product-id', str(product.id), '--quantity', '1',
        ])
        assert result.exit_code != 0
        assert 'RequestError' in result.output


class TestRequestCommands:
    def test_approve_and_reject(self, app, db_session, hq, master_agent, product, seed_stock):
        seed_stock(hq, product, 50)
        first = request_service.create_request(
            requester_account_id=master_agent.id, fulfiller_account_id=hq.id, product_id=product.id, quantity=20,
        )
        second = request_service.create_request(
            requester_account_id=master_agent.id, fulfiller_account_id=hq.id, product_id=product.id, quantity=5,
        )
        runner = app.test_cli_runner()

        result = runner.invoke(args=['requests', 'approve', str(first.id)])
        assert result.exit_code == 0, result.output
        assert f'{first.request_number} approved' in result.output

        result = runner.invoke(args=['requests', 'reject', str(second.id), '--reason', 'Duplicate order'])
        assert result.exit_code == 0, result.output
        db_session.expire_all()

        assert request_service.get_request(second.id).status is RequestStatus.REJECTED
        assert ledger_service.get_balance(master_agent.id, product.id) == 20

        result = runner.invoke(args=['requests', 'approve', str(first.id)])
        assert result.exit_code != 0
        assert 'AlreadyDecided' in result.output


class TestPosCommands:
    def test_sync(self, app, db_session, pos, agent, product):
        pos.by_day[date(2024, 6, 1)] = [
            ExternalTransaction(
                invoice_number='INV-1',
                lines=[ExternalLineItem(line_index=0, product_name='Zaitun 250ml', quantity=1, total_cents=3900)],
            )
        ]
        runner = app.test_cli_runner()

        result = runner.invoke(args=['pos', 'sync', '--account-id', str(agent.id), '--date', '2024-06-01'])
        assert result.exit_code == 0, result.output
        assert 'imported=1' in result.output

        result = runner.invoke(args=['pos', 'sync', '--account-id', str(agent.id), '--date', '2024-06-01'])
        assert 'imported=0 duplicate=1' in result.output

    def test_bad_date(self, app, db_session, agent):
        result = app.test_cli_runner().invoke(args=['pos', 'sync', '--account-id', str(agent.id), '--date', 'June'])
        assert result.exit_code != 0
