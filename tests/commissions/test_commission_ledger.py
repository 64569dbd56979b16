from decimal import Decimal

import pytest

from commissions.models import (
    CalculationMode,
    Commission,
    CommissionPolicy,
    CommissionType,
    PaymentProof,
)
from commissions.services import (
    agent_earnings_summary,
    calculate_amount,
    compute_or_query_commission,
    mark_commission_paid,
    review_commission,
    review_payment_proof,
    submit_payment_proof,
)
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from core.models import AuditLog
from orders.models import Order, OrderStatus
from orders.services import create_order


@pytest.fixture
def collected_order(make_order, drive):
    return drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)


class TestCalculateAmount:
    def test_percentage_rounds_half_up(self):
        assert calculate_amount(CalculationMode.PERCENTAGE, Decimal("0.05"), Decimal("10000.00")) == Decimal("500.00")
        assert calculate_amount(CalculationMode.PERCENTAGE, Decimal("0.025"), Decimal("0.30")) == Decimal("0.01")

    def test_fixed_ignores_base(self):
        assert calculate_amount(CalculationMode.FIXED, Decimal("750"), Decimal("10.00")) == Decimal("750.00")

    def test_unknown_mode(self):
        with pytest.raises(PolicyViolationError):
            calculate_amount("TIERED", Decimal("1"), Decimal("1"))


@pytest.mark.django_db
class TestComputation:
    def test_delivery_commission_on_collection(self, collected_order, courier):
        commission = Commission.objects.get(order=collected_order, commission_type=CommissionType.DELIVERY)
        assert commission.agent == courier
        assert commission.amount == Decimal("500.00")
        assert commission.status == Commission.Status.PENDING
        collected_order.refresh_from_db()
        assert collected_order.commission_amount == Decimal("500.00")
        assert AuditLog.objects.filter(action="COMMISSION_CREATED", entity_id=str(commission.pk)).exists()

    def test_site_manager_credited_for_receipt_on_arrival(self, make_order, drive, site_manager):
        order = drive(make_order(), OrderStatus.AT_SITE)
        commission = Commission.objects.get(order=order)
        assert commission.commission_type == CommissionType.SITE_RECEIPT
        assert commission.agent == site_manager
        assert commission.amount == Decimal("120.00")

    def test_assisted_order_credits_the_sale(self, buyer, seller, site_manager, drive):
        order = create_order(
            buyer=buyer,
            seller=seller,
            total=Decimal("10000.00"),
            source=Order.Source.MANUAL,
            created_by=site_manager.user,
        )
        order = drive(order, OrderStatus.AT_SITE)
        commission = Commission.objects.get(order=order)
        assert commission.commission_type == CommissionType.ASSISTED_PURCHASE
        assert commission.agent == site_manager
        assert commission.amount == Decimal("200.00")

    def test_site_commission_type_must_match_source(self, make_order, drive):
        order = drive(make_order(), OrderStatus.AT_SITE)
        with pytest.raises(PolicyViolationError):
            compute_or_query_commission(order.pk, CommissionType.ASSISTED_PURCHASE)
        assert compute_or_query_commission(order.pk, CommissionType.SITE_RECEIPT).amount == Decimal("120.00")

    def test_compute_or_query_is_idempotent(self, collected_order):
        first = compute_or_query_commission(collected_order.pk)
        second = compute_or_query_commission(collected_order.pk)
        assert first.pk == second.pk
        assert Commission.objects.filter(
            order=collected_order, commission_type=CommissionType.DELIVERY
        ).count() == 1

    def test_not_owed_before_collection(self, make_order, drive):
        order = drive(make_order(), OrderStatus.AT_SITE)
        with pytest.raises(PolicyViolationError):
            compute_or_query_commission(order.pk)

    def test_unknown_type(self, collected_order):
        with pytest.raises(ValidationError):
            compute_or_query_commission(collected_order.pk, "TIP")

    def test_active_policy_overrides_default(self, make_order, drive):
        CommissionPolicy.objects.create(
            commission_type=CommissionType.DELIVERY,
            mode=CalculationMode.FIXED,
            value=Decimal("750"),
        )
        order = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
        commission = compute_or_query_commission(order.pk)
        assert commission.mode == CalculationMode.FIXED
        assert commission.amount == Decimal("750.00")

    def test_rate_frozen_against_later_policy_changes(self, collected_order):
        commission = compute_or_query_commission(collected_order.pk)
        CommissionPolicy.objects.create(
            commission_type=CommissionType.DELIVERY,
            mode=CalculationMode.PERCENTAGE,
            value=Decimal("0.5"),
        )
        again = compute_or_query_commission(collected_order.pk)
        assert again.amount == commission.amount == Decimal("500.00")
        assert again.rate == Decimal("0.0500")


@pytest.mark.django_db
class TestReview:
    def test_approve_then_pay(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        approved = review_commission(commission.pk, Commission.Status.APPROVED, admin_user, notes="ok")
        assert approved.status == Commission.Status.APPROVED
        assert approved.reviewed_by == admin_user
        assert approved.reviewed_at is not None

        paid = mark_commission_paid(commission.pk, admin_user, reference="MM-001")
        assert paid.status == Commission.Status.PAID
        assert paid.payment_reference == "MM-001"
        assert mark_commission_paid(commission.pk, admin_user).pk == paid.pk

    def test_repeating_decision_returns_record(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        review_commission(commission.pk, Commission.Status.REJECTED, admin_user)
        again = review_commission(commission.pk, Commission.Status.REJECTED, admin_user)
        assert again.status == Commission.Status.REJECTED

    def test_contradicting_decision_conflicts(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        review_commission(commission.pk, Commission.Status.APPROVED, admin_user)
        with pytest.raises(ConflictError):
            review_commission(commission.pk, Commission.Status.REJECTED, admin_user)

    def test_only_admins_review(self, collected_order, courier):
        commission = compute_or_query_commission(collected_order.pk)
        with pytest.raises(AuthorizationError):
            review_commission(commission.pk, Commission.Status.APPROVED, courier.user)

    def test_invalid_decision(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        with pytest.raises(ValidationError):
            review_commission(commission.pk, Commission.Status.PAID, admin_user)

    def test_cannot_pay_pending(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        with pytest.raises(PolicyViolationError):
            mark_commission_paid(commission.pk, admin_user)

    @pytest.mark.parametrize("commission_id", ["abc", "7; DROP", 999999])
    def test_unknown_commission_is_not_found(self, admin_user, commission_id):
        with pytest.raises(NotFoundError):
            review_commission(commission_id, Commission.Status.APPROVED, admin_user)
        with pytest.raises(NotFoundError):
            mark_commission_paid(commission_id, admin_user)

    def test_amount_frozen_after_review(self, collected_order, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        commission = review_commission(commission.pk, Commission.Status.APPROVED, admin_user)
        commission.amount = Decimal("9999.00")
        with pytest.raises(ValueError):
            commission.save()

    def test_earnings_summary(self, collected_order, courier, admin_user):
        commission = compute_or_query_commission(collected_order.pk)
        summary = agent_earnings_summary(courier)
        assert summary["pending"] == {"count": 1, "total": Decimal("500.00")}
        assert summary["approved"]["count"] == 0

        review_commission(commission.pk, Commission.Status.APPROVED, admin_user)
        summary = agent_earnings_summary(courier)
        assert summary["pending"]["count"] == 0
        assert summary["approved"]["total"] == Decimal("500.00")
        assert summary["currency"] == "RWF"


@pytest.mark.django_db
class TestPaymentProof:
    def test_courier_submits_once(self, collected_order, courier, make_receipt):
        proof = submit_payment_proof(
            collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
        )
        assert proof.status == PaymentProof.Status.PENDING
        assert proof.agent == courier
        assert proof.amount == Decimal("10000")
        assert proof.attachment.name.startswith("payment_proofs/")

        again = submit_payment_proof(
            collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
        )
        assert again.pk == proof.pk
        assert PaymentProof.objects.filter(order=collected_order).count() == 1

    def test_site_manager_may_submit(self, collected_order, site_manager, make_receipt):
        proof = submit_payment_proof(
            collected_order.pk, Decimal("10000.00"), PaymentProof.Method.MOBILE_MONEY, site_manager.user,
            attachment=make_receipt("momo.pdf"), reference="TX-9",
        )
        assert proof.agent == site_manager
        assert proof.reference == "TX-9"

    def test_outsider_cannot_submit(self, collected_order, courier2, buyer, make_receipt):
        with pytest.raises(AuthorizationError):
            submit_payment_proof(
                collected_order.pk, "100", PaymentProof.Method.CASH, courier2.user, attachment=make_receipt(),
            )
        with pytest.raises(AuthorizationError):
            submit_payment_proof(
                collected_order.pk, "100", PaymentProof.Method.CASH, buyer, attachment=make_receipt(),
            )

    @pytest.mark.parametrize("amount", ["0", "-5", "lots", "NaN", "Infinity", "-Infinity"])
    def test_invalid_amount(self, collected_order, courier, make_receipt, amount):
        with pytest.raises(ValidationError):
            submit_payment_proof(
                collected_order.pk, amount, PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
            )
        assert not PaymentProof.objects.filter(order=collected_order).exists()

    def test_unknown_method(self, collected_order, courier, make_receipt):
        with pytest.raises(ValidationError):
            submit_payment_proof(collected_order.pk, "100", "CHEQUE", courier.user, attachment=make_receipt())

    def test_receipt_is_required(self, collected_order, courier):
        with pytest.raises(ValidationError, match="receipt is required"):
            submit_payment_proof(collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user)
        assert not PaymentProof.objects.filter(order=collected_order).exists()

    def test_receipt_type_and_size_are_checked(self, collected_order, courier, make_receipt, settings):
        with pytest.raises(ValidationError):
            submit_payment_proof(
                collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user,
                attachment=make_receipt("notes.txt"),
            )
        settings.PAYMENT_PROOF_MAX_BYTES = 10
        with pytest.raises(ValidationError, match="too large"):
            submit_payment_proof(
                collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user,
                attachment=make_receipt(size=11),
            )

    def test_review_is_independent_of_commission(self, collected_order, courier, admin_user, make_receipt):
        proof = submit_payment_proof(
            collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
        )
        approved = review_payment_proof(proof.pk, PaymentProof.Status.APPROVED, admin_user)
        assert approved.status == PaymentProof.Status.APPROVED
        commission = Commission.objects.get(order=collected_order, commission_type=CommissionType.DELIVERY)
        assert commission.status == Commission.Status.PENDING

    def test_resubmit_after_rejection(self, collected_order, courier, admin_user, make_receipt):
        proof = submit_payment_proof(
            collected_order.pk, "9000", PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
        )
        review_payment_proof(proof.pk, PaymentProof.Status.REJECTED, admin_user, notes="short")
        with pytest.raises(ConflictError):
            review_payment_proof(proof.pk, PaymentProof.Status.APPROVED, admin_user)

        fresh = submit_payment_proof(
            collected_order.pk, "10000", PaymentProof.Method.CASH, courier.user, attachment=make_receipt(),
        )
        assert fresh.pk != proof.pk
        assert fresh.status == PaymentProof.Status.PENDING

    @pytest.mark.parametrize("proof_id", ["abc", "12x", 999999])
    def test_review_of_unknown_proof_is_not_found(self, admin_user, proof_id):
        with pytest.raises(NotFoundError):
            review_payment_proof(proof_id, PaymentProof.Status.APPROVED, admin_user)
