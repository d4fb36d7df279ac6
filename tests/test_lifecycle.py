"""
Shipment lifecycle: pricing, delivery estimates, tracking numbers,
payment confirmation and status transitions.

These run against the in-memory store and a zero-delay mock provider.
"""
import asyncio
import threading
from datetime import timedelta

import pytest

from shiptrack.core.errors import (
    IllegalTransitionError,
    NotFoundError,
    PaymentFailedError,
    StorageUnavailableError,
    TrackingNumberUnavailableError,
    ValidationError,
)
from shiptrack.schemas import PaymentStatus, ServiceType, Shipment, ShipmentStatus, TrackingEvent
from shiptrack.services.lifecycle import (
    ShipmentLifecycle,
    calculate_cost,
    can_transition,
    describe_status,
    estimate_delivery,
)
from shiptrack.services.payment import MockPaymentProvider
from shiptrack.store.record_store import InMemoryRecordStore

from conftest import RecordingPaymentProvider


class RefusingStore(InMemoryRecordStore):
    """In-memory store that refuses writes for the kinds listed in `refused`."""

    def __init__(self):
        super().__init__()
        self.refused = set()

    def _write(self, key, record_id, payload):
        if key.rsplit(':', 1)[-1] in self.refused:
            raise StorageUnavailableError("write refused")
        super()._write(key, record_id, payload)


# ────────────────────────────────────────────
# PRICING / ETA
# ────────────────────────────────────────────


class TestCost:
    @pytest.mark.parametrize("weight", [0.1, 0.5, 1, 2.5, 3.3, 7.75, 12, 40.2])
    @pytest.mark.parametrize("service,multiplier", [
        (ServiceType.STANDARD, 1), (ServiceType.EXPRESS, 2), (ServiceType.OVERNIGHT, 3),
    ])
    def test_formula(self, weight, service, multiplier):
        expected = (50 + weight * 20) * multiplier
        assert calculate_cost(weight, service) == int(expected + 0.5)

    def test_express_two_and_a_half_kilos(self):
        assert calculate_cost(2.5, ServiceType.EXPRESS) == 200

    def test_overnight_one_kilo(self):
        assert calculate_cost(1, ServiceType.OVERNIGHT) == 210

    def test_half_rounds_up(self):
        # 50 + 0.025 * 20 = 50.5
        assert calculate_cost(0.025, ServiceType.STANDARD) == 51


class TestDeliveryEstimate:
    @pytest.mark.parametrize("service,days", [
        (ServiceType.STANDARD, 5), (ServiceType.EXPRESS, 2), (ServiceType.OVERNIGHT, 1),
    ])
    def test_offsets(self, clock, service, days):
        created = clock()
        assert estimate_delivery(created, service) == created + timedelta(days=days)


# ────────────────────────────────────────────
# DRAFT CREATION
# ────────────────────────────────────────────


class TestCreateShipment:
    def test_draft_fields(self, lifecycle, user, make_input, store):
        draft = lifecycle.create_shipment(user, make_input(package_weight=1, service_type='overnight'))

        assert draft.user_id == user.id
        assert draft.cost == 210
        assert draft.estimated_delivery == draft.created_at + timedelta(days=1)
        assert draft.status == ShipmentStatus.PENDING
        assert draft.payment_status == PaymentStatus.PENDING
        assert draft.tracking_number.startswith('ST')
        assert draft.currency == 'INR'
        # not persisted until paid
        assert store.list(Shipment) == []

    @pytest.mark.parametrize("overrides", [
        {'sender_name': ''},
        {'sender_name': '   '},
        {'receiver_name': ''},
        {'package_weight': 0},
        {'package_weight': -1.5},
        {'package_weight': float('inf')},
        {'package_weight': float('nan')},
        {'service_type': 'teleport'},
    ])
    def test_invalid_input(self, lifecycle, user, make_input, overrides):
        with pytest.raises(ValidationError):
            lifecycle.create_shipment(user, make_input(**overrides))

    def test_tracking_numbers_do_not_collide(self, lifecycle, user, make_input):
        numbers = {lifecycle.create_shipment(user, make_input()).tracking_number for _ in range(500)}
        assert len(numbers) == 500

    def test_tracking_number_skips_existing(self, lifecycle, user, make_input, store, monkeypatch):
        paid = asyncio.run(lifecycle.confirm_payment(lifecycle.create_shipment(user, make_input())))
        candidates = iter([paid.tracking_number, 'STFRESH0000000001'])
        monkeypatch.setattr('shiptrack.services.lifecycle.generate_tracking_number', lambda: next(candidates))

        assert lifecycle.create_shipment(user, make_input()).tracking_number == 'STFRESH0000000001'

    def test_gives_up_when_every_number_is_taken(self, lifecycle, user, make_input, monkeypatch):
        paid = asyncio.run(lifecycle.confirm_payment(lifecycle.create_shipment(user, make_input())))
        monkeypatch.setattr('shiptrack.services.lifecycle.generate_tracking_number', lambda: paid.tracking_number)

        with pytest.raises(TrackingNumberUnavailableError):
            lifecycle.create_shipment(user, make_input())


# ────────────────────────────────────────────
# PAYMENT CONFIRMATION
# ────────────────────────────────────────────


class TestConfirmPayment:
    def test_commits_shipment_and_first_event(self, lifecycle, user, make_input, store, payments):
        draft = lifecycle.create_shipment(user, make_input())
        shipment = asyncio.run(lifecycle.confirm_payment(draft))

        assert shipment.payment_status == PaymentStatus.PAID
        assert shipment.payment_id == f"pay_{draft.tracking_number}"
        assert store.list(Shipment)[0] == shipment
        assert payments.charges[0].amount == draft.cost

        events = store.list(TrackingEvent)
        assert len(events) == 1
        assert events[0].shipment_id == shipment.id
        assert events[0].status == 'pending'
        assert events[0].description == 'Shipment created and awaiting pickup'
        assert events[0].location == 'Origin facility'

    def test_declined_payment_persists_nothing(self, store, clock, user, make_input):
        engine = ShipmentLifecycle(store, MockPaymentProvider(delay_seconds=0, decline=True), clock=clock)
        draft = engine.create_shipment(user, make_input())

        with pytest.raises(PaymentFailedError):
            asyncio.run(engine.confirm_payment(draft))
        assert draft.payment_status == PaymentStatus.FAILED
        assert store.list(Shipment) == []
        assert store.list(TrackingEvent) == []

    def test_cancelled_payment_persists_nothing(self, store, clock, user, make_input):
        engine = ShipmentLifecycle(store, MockPaymentProvider(delay_seconds=30), clock=clock)
        draft = engine.create_shipment(user, make_input())

        async def pay_then_close():
            task = asyncio.create_task(engine.confirm_payment(draft))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(pay_then_close())
        assert store.list(Shipment) == []
        assert store.list(TrackingEvent) == []
        assert draft.payment_status == PaymentStatus.PENDING

    def test_double_confirmation_rejected(self, lifecycle, user, make_input, payments):
        draft = lifecycle.create_shipment(user, make_input())
        asyncio.run(lifecycle.confirm_payment(draft))
        with pytest.raises(ValidationError):
            asyncio.run(lifecycle.confirm_payment(draft))
        assert len(payments.charges) == 1

    def test_storage_failure_after_charge_is_not_charged_again(self, clock, user, make_input):
        store = RefusingStore()
        payments = RecordingPaymentProvider(delay_seconds=0)
        engine = ShipmentLifecycle(store, payments, clock=clock)
        draft = engine.create_shipment(user, make_input())

        store.refused.add('shipments')
        with pytest.raises(StorageUnavailableError):
            asyncio.run(engine.confirm_payment(draft))
        assert draft.payment_status == PaymentStatus.PAID
        assert store.list(Shipment) == []

        store.refused.clear()
        shipment = asyncio.run(engine.confirm_payment(draft))

        assert len(payments.charges) == 1
        assert store.get(Shipment, draft.id).payment_id == payments.charges[0].payment_id
        assert [e.status for e in store.list(TrackingEvent)] == ['pending']
        assert shipment.payment_status == PaymentStatus.PAID

    def test_missing_first_event_is_written_on_retry(self, clock, user, make_input):
        store = RefusingStore()
        payments = RecordingPaymentProvider(delay_seconds=0)
        engine = ShipmentLifecycle(store, payments, clock=clock)
        draft = engine.create_shipment(user, make_input())

        store.refused.add('tracking_events')
        with pytest.raises(StorageUnavailableError):
            asyncio.run(engine.confirm_payment(draft))
        assert len(store.list(Shipment)) == 1
        assert store.list(TrackingEvent) == []

        store.refused.clear()
        asyncio.run(engine.confirm_payment(draft))
        events = store.list(TrackingEvent)
        assert [(e.shipment_id, e.status) for e in events] == [(draft.id, 'pending')]
        assert len(payments.charges) == 1

        # complete now, so a further attempt is a double confirmation
        with pytest.raises(ValidationError):
            asyncio.run(engine.confirm_payment(draft))
        assert len(store.list(TrackingEvent)) == 1

    def test_store_calls_run_off_the_event_loop(self, clock, user, make_input):
        store_threads = []

        class ThreadNotingStore(InMemoryRecordStore):
            def _write(self, key, record_id, payload):
                store_threads.append(threading.get_ident())
                super()._write(key, record_id, payload)

            def _read(self, key, record_id):
                store_threads.append(threading.get_ident())
                return super()._read(key, record_id)

        engine = ShipmentLifecycle(ThreadNotingStore(), MockPaymentProvider(delay_seconds=0), clock=clock)
        draft = engine.create_shipment(user, make_input())

        async def pay():
            await engine.confirm_payment(draft)
            return threading.get_ident()

        loop_thread = asyncio.run(pay())
        assert store_threads
        assert loop_thread not in store_threads

    def test_publishes_status_event(self, lifecycle, user, make_input, published):
        shipment = asyncio.run(lifecycle.confirm_payment(lifecycle.create_shipment(user, make_input())))
        assert published == [{
            'type': 'shipping.status_changed',
            'shipment_id': shipment.id,
            'user_id': user.id,
            'tracking_number': shipment.tracking_number,
            'status': 'pending',
            'location': 'Origin facility',
        }]


# ────────────────────────────────────────────
# STATUS EVENTS / TRANSITIONS
# ────────────────────────────────────────────


@pytest.fixture()
def booked(lifecycle, user, make_input):
    return asyncio.run(lifecycle.confirm_payment(lifecycle.create_shipment(user, make_input())))


class TestDescribeStatus:
    @pytest.mark.parametrize("status,description,location", [
        ('pending', 'Shipment created and awaiting pickup', 'Origin facility'),
        ('picked_up', 'Package has been picked up from sender', '12 MG Road, Bengaluru'),
        ('in_transit', 'Package is in transit to destination', 'Transit hub'),
        ('out_for_delivery', 'Package is out for delivery', 'Local delivery facility'),
        ('delivered', 'Package has been delivered successfully', '4 Marine Drive, Mumbai'),
        ('cancelled', 'Shipment has been cancelled', 'Origin facility'),
        ('lost_at_sea', 'Status updated', 'Unknown location'),
    ])
    def test_table(self, booked, status, description, location):
        assert describe_status(status, booked) == (description, location)


class TestRecordStatusChange:
    def test_appends_without_checking_order(self, lifecycle, booked, store):
        event = lifecycle.record_status_change(booked, 'delivered')
        lifecycle.record_status_change(booked, 'whatever')

        assert event.location == booked.receiver_address
        assert [e.status for e in store.list(TrackingEvent)] == ['whatever', 'delivered', 'pending']


class TestUpdateStatus:
    def test_full_forward_chain(self, lifecycle, booked, store):
        for status in ('picked_up', 'in_transit', 'out_for_delivery', 'delivered'):
            shipment = lifecycle.update_status(booked.id, status)
            assert shipment.status.value == status

        stored = store.get(Shipment, booked.id)
        assert stored.status == ShipmentStatus.DELIVERED
        assert stored.updated_at > booked.updated_at
        assert stored.cost == booked.cost
        assert len(store.list(TrackingEvent)) == 5

    def test_skipping_a_stage_is_illegal(self, lifecycle, booked, store):
        with pytest.raises(IllegalTransitionError) as exc:
            lifecycle.update_status(booked.id, 'delivered')
        assert exc.value.current == 'pending'
        assert store.get(Shipment, booked.id).status == ShipmentStatus.PENDING
        assert len(store.list(TrackingEvent)) == 1

    def test_terminal_states(self, lifecycle, booked):
        lifecycle.update_status(booked.id, 'cancelled')
        with pytest.raises(IllegalTransitionError):
            lifecycle.update_status(booked.id, 'picked_up')
        with pytest.raises(IllegalTransitionError):
            lifecycle.update_status(booked.id, 'cancelled')

    def test_unknown_status(self, lifecycle, booked):
        with pytest.raises(ValidationError):
            lifecycle.update_status(booked.id, 'teleported')

    def test_unknown_shipment(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.update_status('nope', 'picked_up')

    @pytest.mark.parametrize("current", ['pending', 'picked_up', 'in_transit', 'out_for_delivery'])
    def test_cancel_allowed_from_non_terminal(self, current):
        assert can_transition(ShipmentStatus(current), ShipmentStatus.CANCELLED)

    def test_cancel_by_owner(self, lifecycle, booked, user):
        shipment = lifecycle.cancel_shipment(user, booked.id)
        assert shipment.status == ShipmentStatus.CANCELLED

    def test_cancel_by_someone_else(self, lifecycle, booked, identity):
        other = identity.signup('other@example.com', 'password123', 'Other Person').user
        with pytest.raises(NotFoundError):
            lifecycle.cancel_shipment(other, booked.id)
