from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from shiptrack.schemas import ShipmentInput
from shiptrack.services.drafts import DraftBook
from shiptrack.services.identity import IdentityResolver
from shiptrack.services.lifecycle import ShipmentLifecycle
from shiptrack.services.payment import MockPaymentProvider
from shiptrack.services.tracking import TrackingQuery
from shiptrack.store.record_store import InMemoryRecordStore


class StepClock:
    """Deterministic clock; every call advances by `step`."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


class FakeRedis:
    """Just enough of the redis client surface used by RedisRecordStore."""

    def __init__(self, fail=False, fail_on=()):
        self.fail = fail
        self.fail_on = set(fail_on)
        self.hashes = {}
        self.zsets = {}
        self.counters = {}

    def _check(self, command=None):
        if self.fail or command in self.fail_on:
            raise RedisConnectionError("Connection refused")

    def incr(self, key):
        self._check('incr')
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def hset(self, key, field, value):
        self._check('hset')
        self.hashes.setdefault(key, {})[field] = value

    def hget(self, key, field):
        self._check()
        return self.hashes.get(key, {}).get(field)

    def hmget(self, key, fields):
        self._check()
        bucket = self.hashes.get(key, {})
        return [bucket.get(f) for f in fields]

    def zadd(self, key, mapping):
        self._check('zadd')
        self.zsets.setdefault(key, {}).update(mapping)

    def zrevrange(self, key, start, end):
        self._check()
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1], reverse=True)
        ids = [k for k, _ in ordered]
        return ids[start:] if end == -1 else ids[start:end + 1]

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class FakePipeline:
    """Queues commands and applies them all on `execute`, like MULTI/EXEC."""

    def __init__(self, client):
        self.client = client
        self.queued = []

    def hset(self, key, field, value):
        self.queued.append(('hset', (key, field, value)))

    def zadd(self, key, mapping):
        self.queued.append(('zadd', (key, mapping)))

    def execute(self):
        for command, _ in self.queued:
            self.client._check(command)
        results = [getattr(self.client, command)(*args) for command, args in self.queued]
        self.queued = []
        return results


class RecordingPaymentProvider(MockPaymentProvider):
    """Mock provider that also keeps every receipt it hands out."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.charges = []

    async def charge(self, amount, currency, reference):
        receipt = await super().charge(amount, currency, reference)
        self.charges.append(receipt)
        return receipt


@pytest.fixture()
def store():
    return InMemoryRecordStore()


@pytest.fixture()
def clock():
    return StepClock()


@pytest.fixture()
def payments():
    return RecordingPaymentProvider(delay_seconds=0)


@pytest.fixture()
def published():
    return []


@pytest.fixture()
def lifecycle(store, payments, clock, published):
    return ShipmentLifecycle(store, payments, currency='INR', publish=published.append, clock=clock)


@pytest.fixture()
def identity(store):
    return IdentityResolver(store)


@pytest.fixture()
def tracking(store):
    return TrackingQuery(store)


@pytest.fixture()
def user(identity):
    return identity.signup('asha@example.com', 'correct-horse', 'Asha Rao', '555-0101').user


def shipment_input(**overrides):
    data = dict(
        sender_name='Asha Rao',
        sender_address='12 MG Road, Bengaluru',
        sender_phone='555-0101',
        receiver_name='Vikram Shah',
        receiver_address='4 Marine Drive, Mumbai',
        receiver_phone='555-0199',
        package_weight=2.5,
        package_dimensions='30x20x10',
        service_type='express',
    )
    data.update(overrides)
    return ShipmentInput(**data)


@pytest.fixture()
def client(store):
    from shiptrack.api import deps
    from shiptrack.main import app

    drafts = DraftBook(ttl_seconds=900)
    provider = RecordingPaymentProvider(delay_seconds=0)
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_drafts] = lambda: drafts
    app.dependency_overrides[deps.get_payments] = lambda: provider
    with TestClient(app) as c:
        c.provider = provider
        c.drafts = drafts
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_input():
    return shipment_input
