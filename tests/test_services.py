"""Unit tests for ChallanService.

These test use-case orchestration and domain error mapping against the
in-memory store.
Run with: pytest tests/test_services.py -v
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from challans.config import ChallanConfig
from challans.domain import (
    CapabilityGrant,
    ChallanId,
    ChallanStatus,
    EventKind,
    PaymentId,
    PaymentStatus,
    Role,
)
from challans.domain.payments import PaymentStrategyDispatcher
from challans.gateways import GatewayRegistry
from challans.notifications import NotificationBus
from challans.services import ChallanService, OperationResult
from tests.fakes import (
    FIXED_NOW,
    ExplodingChannel,
    FailingGateway,
    RecordingChannel,
    card_details,
    make_user,
    speeding_attrs,
)

UPI_DETAILS = {"upi_id": "asha@okbank", "pin": "1234"}


def pay(service, citizen, challan, method="credit_card", details=None) -> OperationResult:
    return service.process_payment(
        str(citizen.id), challan["id"], method, details if details is not None else card_details()
    )


class TestOperationResult:
    """Tests for OperationResult rendering."""

    def test_failure_dict(self, service):
        """A failure renders its message, code and field errors."""
        result = service.get_dashboard("not-a-uuid")
        assert result.as_dict() == {
            "success": False,
            "error": "Invalid user_id",
            "error_code": "VALIDATION_FAILED",
            "fields": {"user_id": ["Must be a valid UUID."]},
        }

    def test_success_dict_merges_data(self, issued_challan, service, citizen):
        """A success renders its data at the top level."""
        result = service.get_dashboard(str(citizen.id))
        assert result.as_dict()["success"] is True
        assert "dashboard" in result.as_dict()


class TestIssueChallan:
    """Tests for ChallanService.issue_challan."""

    def test_speeding_end_to_end(self, service, officer, citizen, channel, store):
        """Limit 50, actual 90: fine 1000, pending, one challan_created event."""
        result = service.issue_challan(str(officer.id), speeding_attrs())

        assert result.success
        challan = result.data["challan"]
        assert challan["fine_amount"] == "1000.00"
        assert challan["status"] == "pending"
        assert challan["violation_type"] == "Speeding"
        assert challan["challan_number"].startswith("CH-")
        assert challan["citizen_id"] == str(citizen.id)
        assert channel.kinds() == [EventKind.CHALLAN_CREATED]
        assert len(store.challans) == 1

    def test_due_date_uses_config(self, store, bus, clock, officer, citizen):
        """The due date is issue time plus the configured days."""
        service = ChallanService(store=store, config=ChallanConfig(due_days=7), bus=bus, clock=clock)
        service.issue_challan(str(officer.id), speeding_attrs())
        (challan,) = store.challans.values()
        assert challan.due_date == FIXED_NOW + timedelta(days=7)

    def test_event_reaches_every_channel(self, store, config, clock, officer, citizen):
        """challan_created reaches every registered channel."""
        channels = [RecordingChannel("email"), RecordingChannel("sms"), RecordingChannel("audit")]
        service = ChallanService(
            store=store, config=config, bus=NotificationBus(channels), clock=clock
        )
        service.issue_challan(str(officer.id), speeding_attrs())
        for channel in channels:
            assert channel.kinds() == [EventKind.CHALLAN_CREATED]
        payload = channels[0].events[0].payload
        assert payload["citizen_email"] == "citizen@example.com"
        assert payload["fine_amount"] == "1000.00"

    def test_unknown_violation_type_creates_nothing(self, service, officer, citizen, store, channel):
        """An unknown violation type stores and publishes nothing."""
        result = service.issue_challan(str(officer.id), speeding_attrs(violation_type="jaywalking"))
        assert not result.success
        assert result.error_code == "VALIDATION_FAILED"
        assert store.challans == {}
        assert channel.events == []

    def test_citizen_cannot_issue(self, service, citizen):
        """Citizens lack create_challans."""
        result = service.issue_challan(str(citizen.id), speeding_attrs())
        assert result.error_code == "NOT_AUTHORIZED"

    def test_unknown_officer(self, service, citizen):
        """An unknown officer id is NOT_FOUND."""
        result = service.issue_challan("6b0b7c1e-0000-4000-8000-000000000000", speeding_attrs())
        assert result.error_code == "NOT_FOUND"
        assert result.error == "Officer not found"

    def test_unknown_citizen_email(self, service, officer):
        """An unknown citizen email is NOT_FOUND."""
        result = service.issue_challan(str(officer.id), speeding_attrs(citizen_email="x@y.z"))
        assert result.error_code == "NOT_FOUND"
        assert result.error == "Citizen not found"

    def test_email_of_non_citizen_is_not_found(self, service, officer):
        """The email must belong to a citizen."""
        result = service.issue_challan(
            str(officer.id), speeding_attrs(citizen_email="officer@example.com")
        )
        assert result.error_code == "NOT_FOUND"

    def test_missing_citizen_email(self, service, officer):
        """A missing citizen email is a field error."""
        attrs = speeding_attrs()
        del attrs["citizen_email"]
        result = service.issue_challan(str(officer.id), attrs)
        assert result.error_code == "VALIDATION_FAILED"
        assert "citizen_email" in result.field_errors

    def test_disabled_capability_blocks_issue(self, store, bus, clock, officer, citizen):
        """A disabled capability blocks even an officer."""
        config = ChallanConfig(disabled_capabilities=frozenset({"create_challans"}))
        service = ChallanService(store=store, config=config, bus=bus, clock=clock)
        assert service.issue_challan(str(officer.id), speeding_attrs()).error_code == (
            "NOT_AUTHORIZED"
        )

    def test_temporary_grant_allows_issue(self, store, service, citizen):
        """An unexpired grant lets a citizen issue."""
        deputy = store.add_user(
            make_user(
                Role.CITIZEN,
                email="deputy@example.com",
                grants=(CapabilityGrant("create_challans", FIXED_NOW + timedelta(days=1)),),
            )
        )
        assert service.issue_challan(str(deputy.id), speeding_attrs()).success

    @pytest.mark.parametrize("attrs", [None, "speeding", ["speeding"]])
    def test_non_mapping_attrs_are_a_validation_error(self, service, officer, store, attrs):
        """Violation details that are not a mapping fail validation and create nothing."""
        result = service.issue_challan(str(officer.id), attrs)
        assert result.error_code == "VALIDATION_FAILED"
        assert store.challans == {}

    def test_events_wait_for_the_outer_transaction(self, service, store, officer, citizen, channel):
        """Inside an enclosing transaction, publication happens when it commits."""
        with store.atomic():
            assert service.issue_challan(str(officer.id), speeding_attrs()).success
            assert channel.events == []
        assert channel.kinds() == [EventKind.CHALLAN_CREATED]

    def test_rolled_back_issue_publishes_nothing(self, service, store, officer, citizen, channel):
        """An enclosing transaction that rolls back discards the pending event."""
        with pytest.raises(RuntimeError), store.atomic():
            service.issue_challan(str(officer.id), speeding_attrs())
            raise RuntimeError("abort")
        assert store.challans == {}
        assert channel.events == []


class TestProcessPayment:
    """Tests for ChallanService.process_payment."""

    def test_credit_card_payment(self, service, citizen, issued_challan, channel, store):
        """A card payment adds the fee, marks the challan paid and publishes once."""
        result = pay(service, citizen, issued_challan)

        assert result.success
        payment = result.data["payment"]
        assert payment["amount"] == "1000.00"
        assert payment["fee"] == "29.00"
        assert payment["total_amount"] == "1029.00"
        assert payment["gateway"] == "stripe"
        assert payment["status"] == "completed"
        assert payment["card_last4"] == "1111"
        assert result.data["challan"]["status"] == "paid"
        assert channel.kinds() == [EventKind.PAYMENT_RECEIVED]
        assert channel.events[0].payload["amount"] == "1029.00"

        stored = store.challans[ChallanId.from_string(issued_challan["id"])]
        assert stored.status == ChallanStatus.PAID
        assert stored.payment_date == FIXED_NOW

    def test_upi_payment_has_no_fee(self, service, citizen, issued_challan):
        """A UPI payment is fee-free and keeps the UPI id."""
        result = pay(service, citizen, issued_challan, "upi", UPI_DETAILS)
        assert result.data["payment"]["fee"] == "0.00"
        assert result.data["payment"]["upi_id"] == "asha@okbank"

    def test_replay_does_not_double_charge(self, service, citizen, issued_challan, channel, store):
        """A second payment for a paid challan fails and publishes nothing."""
        assert pay(service, citizen, issued_challan).success
        channel.events.clear()

        replay = pay(service, citizen, issued_challan)

        assert not replay.success
        assert replay.error_code == "ILLEGAL_TRANSITION"
        assert len(store.payments) == 1
        assert channel.events == []

    def test_stale_read_leaves_one_payment(self, service, citizen, issued_challan, store, channel):
        """Two payments that both saw the challan pending produce one completed payment."""
        challan_id = ChallanId.from_string(issued_challan["id"])
        stale = store.challans[challan_id]
        real_find = store.find_challan_by_id
        store.find_challan_by_id = lambda _: stale

        first = pay(service, citizen, issued_challan)
        second = pay(service, citizen, issued_challan, "upi", UPI_DETAILS)

        store.find_challan_by_id = real_find
        assert first.success
        assert second.error_code == "ILLEGAL_TRANSITION"
        completed = [p for p in store.payments.values() if p.status == PaymentStatus.COMPLETED]
        assert len(completed) == 1
        assert channel.kinds() == [EventKind.PAYMENT_RECEIVED]

    @pytest.mark.parametrize("method", ["net_banking", "cash", "cheque"])
    def test_unsupported_method_changes_nothing(
        self, service, citizen, issued_challan, store, channel, method
    ):
        """Unsupported methods leave the challan pending and publish nothing."""
        result = pay(service, citizen, issued_challan, method, {})
        assert result.error_code == "UNSUPPORTED_METHOD"
        assert store.payments == {}
        assert store.challans[ChallanId.from_string(issued_challan["id"])].status == (
            ChallanStatus.PENDING
        )
        assert channel.events == []

    def test_invalid_details_change_nothing(self, service, citizen, issued_challan, store):
        """Invalid details are reported per field and store nothing."""
        result = pay(service, citizen, issued_challan, details=card_details(cvv="1"))
        assert result.error_code == "VALIDATION_FAILED"
        assert result.field_errors == {"cvv": ["Invalid CVV"]}
        assert store.payments == {}

    def test_other_citizen_cannot_pay(self, service, store, issued_challan):
        """Only the challan's citizen may pay it."""
        stranger = store.add_user(make_user(Role.CITIZEN, email="stranger@example.com"))
        assert pay(service, stranger, issued_challan).error_code == "NOT_AUTHORIZED"

    def test_unknown_challan(self, service, citizen):
        """An unknown challan id is NOT_FOUND."""
        result = service.process_payment(
            str(citizen.id), str(ChallanId.new()), "upi", UPI_DETAILS
        )
        assert result.error_code == "NOT_FOUND"

    def test_disputed_challan_cannot_be_paid(self, service, citizen, issued_challan):
        """A disputed challan is closed to payment."""
        service.dispute_challan(str(citizen.id), issued_challan["id"], "Not my car")
        assert pay(service, citizen, issued_challan).error_code == "ILLEGAL_TRANSITION"

    def test_failing_channel_does_not_fail_payment(
        self, store, config, clock, citizen, officer
    ):
        """A channel that raises does not fail the payment."""
        recorder = RecordingChannel()
        service = ChallanService(
            store=store,
            config=config,
            bus=NotificationBus([ExplodingChannel(), recorder]),
            clock=clock,
        )
        challan = service.issue_challan(str(officer.id), speeding_attrs()).data["challan"]
        result = pay(service, citizen, challan)
        assert result.success
        assert recorder.kinds() == [EventKind.CHALLAN_CREATED, EventKind.PAYMENT_RECEIVED]

    @pytest.mark.parametrize("details", ["4111111111111111", 4111, ["upi"]])
    def test_non_mapping_details_are_a_validation_error(
        self, service, citizen, issued_challan, store, details
    ):
        """Payment details that are not a mapping fail validation and charge nothing."""
        result = pay(service, citizen, issued_challan, details=details)
        assert result.error_code == "VALIDATION_FAILED"
        assert "method_details" in result.field_errors
        assert store.payments == {}

    def test_payment_date_is_the_processing_time(self, store, config, bus, clock, citizen, officer):
        """The paid challan carries the time the payment was processed."""
        processed_at = FIXED_NOW + timedelta(minutes=5)
        service = ChallanService(
            store=store,
            config=config,
            bus=bus,
            clock=clock,
            dispatcher=PaymentStrategyDispatcher(clock=lambda: processed_at),
        )
        challan = service.issue_challan(str(officer.id), speeding_attrs()).data["challan"]

        result = pay(service, citizen, challan)

        stored = store.challans[ChallanId.from_string(challan["id"])]
        assert stored.payment_date == processed_at
        assert store.payments[PaymentId.from_string(result.data["payment"]["id"])].paid_at == (
            processed_at
        )


class TestRefundPayment:
    """Tests for ChallanService.refund_payment."""

    @pytest.fixture
    def payment(self, service, citizen, issued_challan, channel) -> dict:
        result = pay(service, citizen, issued_challan)
        channel.events.clear()
        return result.data["payment"]

    def test_full_refund(self, service, payment, store, channel, admin):
        """A full refund cancels the challan and publishes payment_refunded."""
        result = service.refund_payment(payment["id"], actor_id=str(admin.id))

        assert result.success
        assert result.data["refund"]["amount"] == "1000.00"
        assert result.data["refund"]["refund_id"].startswith("re_")
        assert result.data["payment"]["status"] == "refunded"
        stored = store.payments[PaymentId.from_string(payment["id"])]
        assert stored.status == PaymentStatus.REFUNDED
        challan = store.challans[stored.challan_id]
        assert challan.status == ChallanStatus.CANCELLED
        assert channel.kinds() == [EventKind.PAYMENT_REFUNDED]

    def test_partial_refund(self, service, payment):
        """A partial refund records the requested amount."""
        result = service.refund_payment(payment["id"], amount="250.50")
        assert result.data["payment"]["refund_amount"] == "250.50"

    @pytest.mark.parametrize("amount", ["0", "-5", "1000.01", "abc", "NaN"])
    def test_invalid_amounts(self, service, payment, amount):
        """Non-positive, excessive and non-numeric amounts fail validation."""
        assert service.refund_payment(payment["id"], amount=amount).error_code == (
            "VALIDATION_FAILED"
        )

    def test_second_refund_fails(self, service, payment):
        """A refunded payment cannot be refunded again."""
        assert service.refund_payment(payment["id"]).success
        assert service.refund_payment(payment["id"]).error_code == "ILLEGAL_TRANSITION"

    def test_gateway_failure_mutates_nothing(
        self, store, config, bus, clock, citizen, officer, channel
    ):
        """A gateway error leaves payment and challan untouched."""
        gateway = FailingGateway("stripe")
        service = ChallanService(
            store=store, config=config, bus=bus, clock=clock, gateways=GatewayRegistry([gateway])
        )
        challan = service.issue_challan(str(officer.id), speeding_attrs()).data["challan"]
        payment = pay(service, citizen, challan).data["payment"]
        channel.events.clear()

        result = service.refund_payment(payment["id"])

        assert result.error_code == "GATEWAY_FAILED"
        assert len(gateway.calls) == 1
        stored = store.payments[PaymentId.from_string(payment["id"])]
        assert stored.status == PaymentStatus.COMPLETED
        assert store.challans[stored.challan_id].status == ChallanStatus.PAID
        assert channel.events == []

    def test_actor_needs_refund_capability(self, service, payment, officer):
        """An actor without process_refunds is refused."""
        result = service.refund_payment(payment["id"], actor_id=str(officer.id))
        assert result.error_code == "NOT_AUTHORIZED"

    def test_unknown_payment(self, service):
        """An unknown payment id is NOT_FOUND."""
        assert service.refund_payment(str(PaymentId.new())).error_code == "NOT_FOUND"

    def test_unknown_gateway(self, service, payment, store):
        """A payment on an unregistered gateway cannot be refunded."""
        payment_id = PaymentId.from_string(payment["id"])
        store.payments[payment_id] = replace(store.payments[payment_id], gateway="paypal")
        assert service.refund_payment(payment["id"]).error_code == "UNSUPPORTED_METHOD"


class TestDisputeChallan:
    """Tests for ChallanService.dispute_challan."""

    def test_dispute_pending(self, service, citizen, issued_challan, channel):
        """Disputing a pending challan records the reason and notifies."""
        result = service.dispute_challan(str(citizen.id), issued_challan["id"], "Not my vehicle")
        assert result.success
        assert result.data["challan"]["status"] == "disputed"
        assert result.data["challan"]["dispute_reason"] == "Not my vehicle"
        assert channel.kinds() == [EventKind.CHALLAN_DISPUTED]
        assert channel.events[0].payload["officer_email"] == "officer@example.com"

    def test_dispute_paid_fails(self, service, citizen, issued_challan, channel):
        """A paid challan cannot be disputed."""
        pay(service, citizen, issued_challan)
        channel.events.clear()
        result = service.dispute_challan(str(citizen.id), issued_challan["id"], "Too late")
        assert result.error_code == "ILLEGAL_TRANSITION"
        assert channel.events == []

    def test_blank_reason(self, service, citizen, issued_challan):
        """An empty reason fails validation."""
        result = service.dispute_challan(str(citizen.id), issued_challan["id"], "")
        assert result.error_code == "VALIDATION_FAILED"

    @pytest.mark.parametrize("reason", [None, 42, ["Not me"]])
    def test_non_text_reason_is_a_validation_error(
        self, service, citizen, issued_challan, store, channel, reason
    ):
        """A reason that is not text fails validation and leaves the challan pending."""
        result = service.dispute_challan(str(citizen.id), issued_challan["id"], reason)
        assert result.error_code == "VALIDATION_FAILED"
        assert store.challans[ChallanId.from_string(issued_challan["id"])].status == (
            ChallanStatus.PENDING
        )
        assert channel.events == []

    def test_only_owner_may_dispute(self, service, officer, issued_challan):
        """Only the challan's citizen may dispute it."""
        result = service.dispute_challan(str(officer.id), issued_challan["id"], "Because")
        assert result.error_code == "NOT_AUTHORIZED"


class TestDashboard:
    """Tests for ChallanService.get_dashboard."""

    def test_citizen_dashboard(self, service, citizen, officer, issued_challan, channel):
        """A citizen sees counts and amounts for their own challans."""
        service.issue_challan(
            str(officer.id),
            speeding_attrs(violation_type="helmet", vehicle_type="motorcycle", passenger_count=2),
        )
        pay(service, citizen, issued_challan)
        channel.events.clear()

        result = service.get_dashboard(str(citizen.id))

        dashboard = result.data["dashboard"]
        assert dashboard["role"] == "citizen"
        assert dashboard["total_challans"] == 2
        assert dashboard["by_status"]["paid"] == {"count": 1, "amount": "1000.00"}
        assert dashboard["by_status"]["pending"] == {"count": 1, "amount": "600.00"}
        assert dashboard["by_status"]["disputed"] == {"count": 0, "amount": "0.00"}
        assert dashboard["pending_amount"] == "600.00"
        assert len(dashboard["recent_challans"]) == 2
        assert channel.events == []

    def test_officer_dashboard(self, service, officer, issued_challan):
        """An officer sees what they issued today and this month."""
        dashboard = service.get_dashboard(str(officer.id)).data["dashboard"]
        assert dashboard["role"] == "officer"
        assert dashboard["issued_today"] == 1
        assert dashboard["issued_this_month"] == 1
        assert dashboard["total_fines"] == "1000.00"

    def test_admin_dashboard_includes_revenue(self, service, admin, citizen, issued_challan):
        """The admin dashboard reports revenue and fees separately."""
        pay(service, citizen, issued_challan)
        dashboard = service.get_dashboard(str(admin.id)).data["dashboard"]
        assert dashboard["payments"]["completed_count"] == 1
        assert dashboard["payments"]["revenue"] == "1000.00"
        assert dashboard["payments"]["fees"] == "29.00"

    def test_recent_limit(self, store, bus, clock, officer, citizen):
        """recent_challans honours the configured limit."""
        service = ChallanService(store=store, config=ChallanConfig(recent_limit=2), bus=bus, clock=clock)
        for _ in range(3):
            service.issue_challan(str(officer.id), speeding_attrs())
        dashboard = service.get_dashboard(str(officer.id)).data["dashboard"]
        assert dashboard["total_challans"] == 3
        assert len(dashboard["recent_challans"]) == 2

    def test_inactive_user_is_refused(self, service, store):
        """An inactive user cannot read a dashboard."""
        user = store.add_user(make_user(Role.CITIZEN, email="gone@example.com", is_active=False))
        assert service.get_dashboard(str(user.id)).error_code == "NOT_AUTHORIZED"


class TestListChallans:
    """Tests for ChallanService.list_challans."""

    def test_pagination(self, service, officer, citizen):
        """Pagination reports page, limit, total and page count."""
        for _ in range(3):
            service.issue_challan(str(officer.id), speeding_attrs())
        result = service.list_challans(str(citizen.id), page=2, limit=2)
        assert result.data["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert len(result.data["challans"]) == 1

    def test_limit_is_capped(self, store, bus, clock, citizen):
        """The limit defaults to page_size and is capped at max_page_size."""
        config = ChallanConfig(page_size=5, max_page_size=20)
        service = ChallanService(store=store, config=config, bus=bus, clock=clock)
        assert service.list_challans(str(citizen.id), limit=500).data["pagination"]["limit"] == 20
        assert service.list_challans(str(citizen.id)).data["pagination"]["limit"] == 5

    def test_scoped_by_role(self, service, store, officer, citizen, admin, issued_challan):
        """Citizens, officers and admins see different slices."""
        other = store.add_user(make_user(Role.CITIZEN, email="other@example.com"))
        assert service.list_challans(str(other.id)).data["pagination"]["total"] == 0
        assert service.list_challans(str(officer.id)).data["pagination"]["total"] == 1
        assert service.list_challans(str(admin.id)).data["pagination"]["total"] == 1

    def test_invalid_page(self, service, citizen):
        """Zero and non-numeric pages fail validation."""
        assert service.list_challans(str(citizen.id), page=0).error_code == "VALIDATION_FAILED"
        assert service.list_challans(str(citizen.id), page="x").error_code == "VALIDATION_FAILED"


class TestPaymentHistory:
    """Tests for ChallanService.get_payment_history."""

    def test_citizen_sees_own_payments(self, service, citizen, issued_challan):
        """A citizen's history totals completed payments including fees."""
        pay(service, citizen, issued_challan)
        result = service.get_payment_history(str(citizen.id))
        assert result.data["summary"] == {"count": 1, "total_paid": "1029.00"}

    def test_citizen_cannot_see_others(self, service, citizen, store):
        """A citizen cannot read another citizen's history."""
        other = store.add_user(make_user(Role.CITIZEN, email="other@example.com"))
        result = service.get_payment_history(str(citizen.id), citizen_id=str(other.id))
        assert result.error_code == "NOT_AUTHORIZED"

    def test_officer_with_reports(self, service, officer, citizen, issued_challan):
        """Officers read a named citizen's history."""
        pay(service, citizen, issued_challan)
        result = service.get_payment_history(str(officer.id), citizen_id=str(citizen.id))
        assert len(result.data["payments"]) == 1

    def test_officer_must_name_citizen(self, service, officer):
        """Officers must say whose history they want."""
        assert service.get_payment_history(str(officer.id)).error_code == "VALIDATION_FAILED"
