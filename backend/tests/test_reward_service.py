# Overview: Pytest coverage for reward progress (purchase volume vs. targets).

from datetime import datetime

import pytest

from tierstock.errors import NotFound, RequestError
from tierstock.models import AccountRole, BranchTier
from tierstock.services import reward_service, transfer_service


@pytest.fixture
def purchases(db_session, hq, master_agent, product, seed_stock):
    """Master agent received 40 in March, 25 in April and 10 the next year."""
    seed_stock(hq, product, 200)
    transfer_service.transfer(hq.id, master_agent.id, product.id, 40, occurred_at=datetime(2024, 3, 5, 10))
    transfer_service.transfer(hq.id, master_agent.id, product.id, 25, occurred_at=datetime(2024, 4, 30, 23, 59))
    transfer_service.transfer(hq.id, master_agent.id, product.id, 10, occurred_at=datetime(2025, 1, 2))
    return master_agent


class TestReceivedQuantity:
    def test_monthly_and_yearly_totals(self, purchases):
        assert reward_service.received_quantity(purchases.id, 2024, 3) == 40
        assert reward_service.received_quantity(purchases.id, 2024, 4) == 25
        assert reward_service.received_quantity(purchases.id, 2024) == 65
        assert reward_service.received_quantity(purchases.id, 2025) == 10

    def test_outgoing_and_sales_do_not_count(self, purchases, agent, product):
        transfer_service.transfer(purchases.id, agent.id, product.id, 5, occurred_at=datetime(2024, 3, 6))
        transfer_service.transfer(purchases.id, None, product.id, 5, occurred_at=datetime(2024, 3, 7))

        assert reward_service.received_quantity(purchases.id, 2024, 3) == 40
        assert reward_service.received_quantity(agent.id, 2024, 3) == 5

    def test_stock_in_is_not_a_purchase(self, db_session, hq, product):
        transfer_service.receive_stock(hq.id, product.id, 50, occurred_at=datetime(2024, 3, 1))
        assert reward_service.received_quantity(hq.id, 2024, 3) == 0


class TestRewardProgress:
    def test_percent_and_achieved(self, purchases):
        reward_service.create_reward_target(
            role=AccountRole.MASTER_AGENT, year=2024, month=3, min_quantity=80, description="Bronze",
        )
        reward_service.create_reward_target(
            role=AccountRole.MASTER_AGENT, year=2024, month=3, min_quantity=40, description="Starter",
        )

        progress = reward_service.reward_progress(purchases.id, 2024, 3)

        assert progress["total_quantity"] == 40
        assert [(t["description"], t["percent"], t["achieved"]) for t in progress["targets"]] == [
            ("Starter", 100, True),
            ("Bronze", 50, False),
        ]

    def test_yearly_view_uses_yearly_targets_only(self, purchases):
        reward_service.create_reward_target(
            role=AccountRole.MASTER_AGENT, year=2024, min_quantity=130, description="Annual trip",
        )
        reward_service.create_reward_target(
            role=AccountRole.MASTER_AGENT, year=2024, month=4, min_quantity=10, description="April",
        )

        progress = reward_service.reward_progress(purchases.id, 2024)

        assert progress["month"] is None
        assert [t["description"] for t in progress["targets"]] == ["Annual trip"]
        assert progress["targets"][0]["percent"] == 50

    def test_other_roles_targets_are_ignored(self, purchases):
        reward_service.create_reward_target(role=AccountRole.AGENT, year=2024, month=3, min_quantity=1, description="Agent")
        assert reward_service.reward_progress(purchases.id, 2024, 3)["targets"] == []

    def test_branch_sub_role_targets(self, db_session, hq, branch, product, seed_stock):
        seed_stock(hq, product, 50)
        transfer_service.transfer(hq.id, branch.id, product.id, 12, occurred_at=datetime(2024, 7, 1))
        reward_service.create_reward_target(
            role=AccountRole.BRANCH, sub_role=BranchTier.PREMIUM, year=2024, month=7, min_quantity=24,
            description="Premium",
        )
        reward_service.create_reward_target(
            role=AccountRole.BRANCH, sub_role=BranchTier.STANDARD, year=2024, month=7, min_quantity=5,
            description="Standard",
        )

        targets = reward_service.reward_progress(branch.id, 2024, 7)["targets"]

        assert [(t["description"], t["percent"]) for t in targets] == [("Premium", 50)]

    def test_zero_minimum_reports_zero_percent(self, purchases):
        reward_service.create_reward_target(
            role=AccountRole.MASTER_AGENT, year=2024, month=3, min_quantity=0, description="Open",
        )
        target = reward_service.reward_progress(purchases.id, 2024, 3)["targets"][0]
        assert target["percent"] == 0
        assert target["achieved"] is True

    def test_unknown_account(self, db_session):
        with pytest.raises(NotFound):
            reward_service.reward_progress(31337, 2024, 1)

    def test_invalid_target_month(self, db_session):
        with pytest.raises(RequestError):
            reward_service.create_reward_target(
                role=AccountRole.AGENT, year=2024, month=13, min_quantity=1, description="Bad",
            )
