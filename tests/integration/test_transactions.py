"""
Integration tests for sale recording and refunds.

Tests cover:
- Sales with referral codes, registered buyers and unknown codes
- Refunds cancelling commissions
"""

from decimal import Decimal

import pytest

from referral_engine.models import CommissionStatus, TransactionStatus
from referral_engine.services import TransactionService
from referral_engine.utils.exceptions import NotFoundError, ValidationError


class TestRecordSale:
    """Test recording qualifying sales."""

    @pytest.mark.asyncio
    async def test_sale_with_code(self, session, default_levels, make_user):
        """Code owner is level 1, their referrer level 2."""
        parent = await make_user()
        owner = await make_user(referrer=parent)

        result = await TransactionService(session).record_sale(
            "Buyer@Example.com", "1000", referral_code=owner.referral_code
        )

        assert result.transaction.customer_email == "buyer@example.com"
        assert result.transaction.referrer_id == owner.id
        assert [(c.affiliate_id, c.amount) for c in result.commissions] == [
            (owner.id, Decimal("150")),
            (parent.id, Decimal("50")),
        ]
        assert result.total_commission == Decimal("200")

    @pytest.mark.asyncio
    async def test_sale_by_registered_buyer(self, session, default_levels, make_user):
        """Without a code the buyer's referrer chain earns."""
        referrer = await make_user()
        buyer = await make_user(referrer=referrer)

        result = await TransactionService(session).record_sale(
            buyer.email, 1000, originating_user_id=buyer.id
        )

        assert [c.affiliate_id for c in result.commissions] == [referrer.id]

    @pytest.mark.asyncio
    async def test_own_code_uses_buyer_chain(self, session, default_levels, make_user):
        """Buying with one's own code does not pay oneself."""
        referrer = await make_user()
        buyer = await make_user(referrer=referrer)

        result = await TransactionService(session).record_sale(
            buyer.email,
            1000,
            referral_code=buyer.referral_code,
            originating_user_id=buyer.id,
        )

        assert result.transaction.referrer_id is None
        assert [c.affiliate_id for c in result.commissions] == [referrer.id]

    @pytest.mark.asyncio
    async def test_unknown_code_recorded_without_commissions(
        self, session, default_levels
    ):
        """The sale is kept, nobody earns."""
        result = await TransactionService(session).record_sale(
            "buyer@example.com", 1000, referral_code="NOPE0000"
        )

        assert result.transaction.id is not None
        assert result.transaction.referrer_id is None
        assert result.commissions == []

    @pytest.mark.asyncio
    async def test_subscription_type(self, session, default_levels, make_user):
        """Subscriptions qualify like purchases."""
        owner = await make_user()

        result = await TransactionService(session).record_sale(
            "buyer@example.com", 40, referral_code=owner.referral_code,
            transaction_type="subscription",
        )

        assert result.transaction.transaction_type == "subscription"
        assert result.commissions[0].amount == Decimal("6")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"customer_email": "bad", "amount": 10},
            {"customer_email": "b@example.com", "amount": "-1"},
            {"customer_email": "b@example.com", "amount": 10, "transaction_type": "gift"},
        ],
    )
    async def test_invalid_input(self, session, default_levels, kwargs):
        """Bad e-mail, amount or type is rejected."""
        with pytest.raises(ValidationError):
            await TransactionService(session).record_sale(**kwargs)

    @pytest.mark.asyncio
    async def test_unknown_buyer(self, session, default_levels):
        """originating_user_id must exist."""
        with pytest.raises(NotFoundError):
            await TransactionService(session).record_sale(
                "buyer@example.com", 10, originating_user_id=5555
            )


class TestRefund:
    """Test refunds."""

    @pytest.mark.asyncio
    async def test_refund_cancels_commissions(self, session, default_levels, make_user):
        """Unpaid commissions are cancelled and balances reversed."""
        owner = await make_user()
        service = TransactionService(session)
        sale = await service.record_sale(
            "buyer@example.com", 1000, referral_code=owner.referral_code
        )

        result = await service.refund(sale.transaction.id)

        assert result.requires_reconciliation is False
        assert [c.status for c in result.cancelled] == [
            CommissionStatus.CANCELLED.value
        ]
        assert sale.transaction.status == TransactionStatus.REFUNDED.value
        await session.refresh(owner)
        assert owner.pending_balance == Decimal("0")

    @pytest.mark.asyncio
    async def test_refund_twice(self, session, default_levels, make_user):
        """Only completed sales can be refunded."""
        owner = await make_user()
        service = TransactionService(session)
        sale = await service.record_sale(
            "buyer@example.com", 1000, referral_code=owner.referral_code
        )
        sale_id = sale.transaction.id
        await service.refund(sale_id, "cancelled")

        with pytest.raises(ValidationError):
            await service.refund(sale_id)

    @pytest.mark.asyncio
    async def test_refund_unknown(self, session):
        """Unknown transactions raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await TransactionService(session).refund(1234)
