import logging
import threading
from typing import Callable, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from shiptrack.core.errors import StorageUnavailableError
from shiptrack.db.models import StoredRecord
from shiptrack.db.session import Base, make_sessionmaker
from shiptrack.schemas import Record

logger = logging.getLogger(__name__)

R = TypeVar('R', bound=Record)


class RecordStore:
    """
    Key-value persistence for records, one storage key per record kind.

    Every collection keeps save order: the last saved record comes first in
    `list`, and saving an existing id moves it back to the head. Reads
    degrade to empty results when the medium is unavailable; writes raise
    StorageUnavailableError.

    Backends implement `_write`, `_read_all` (payloads, most recent first)
    and `_read`, raising StorageUnavailableError on medium failures.
    """

    def __init__(self, namespace: str = 'shiptrack:v1'):
        self.namespace = namespace

    def key(self, kind: str) -> str:
        return f"{self.namespace}:{kind}"

    def save(self, record: R) -> R:
        self._write(self.key(record.kind), record.id, record.model_dump_json())
        return record

    def list(self, model: Type[R]) -> List[R]:
        try:
            payloads = self._read_all(self.key(model.kind))
        except StorageUnavailableError as exc:
            logger.warning("Record store unavailable, reading %s as empty: %s", model.kind, exc)
            return []
        records = []
        for payload in payloads:
            record = self._decode(model, payload)
            if record is not None:
                records.append(record)
        return records

    def find(self, model: Type[R], predicate: Callable[[R], bool]) -> Optional[R]:
        return next((r for r in self.list(model) if predicate(r)), None)

    def get(self, model: Type[R], record_id: str) -> Optional[R]:
        try:
            payload = self._read(self.key(model.kind), record_id)
        except StorageUnavailableError as exc:
            logger.warning("Record store unavailable, %s/%s read as missing: %s", model.kind, record_id, exc)
            return None
        if payload is None:
            return None
        return self._decode(model, payload)

    def _decode(self, model: Type[R], payload: str) -> Optional[R]:
        try:
            return model.model_validate_json(payload)
        except PydanticValidationError:
            logger.warning("Skipping corrupted %s record", model.kind)
            return None

    def _write(self, key: str, record_id: str, payload: str) -> None:
        raise NotImplementedError

    def _read_all(self, key: str) -> List[str]:
        raise NotImplementedError

    def _read(self, key: str, record_id: str) -> Optional[str]:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    """Process-local store; payloads are still serialised so reads return fresh copies."""

    def __init__(self, namespace: str = 'shiptrack:v1'):
        super().__init__(namespace)
        self._data: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def _write(self, key, record_id, payload):
        with self._lock:
            bucket = self._data.setdefault(key, {})
            bucket.pop(record_id, None)
            bucket[record_id] = payload

    def _read_all(self, key):
        with self._lock:
            return list(reversed(list(self._data.get(key, {}).values())))

    def _read(self, key, record_id):
        with self._lock:
            return self._data.get(key, {}).get(record_id)


class RedisRecordStore(RecordStore):
    """
    One hash per kind (`<ns>:<kind>`: id -> JSON) plus a sorted set
    (`<ns>:<kind>:order`) scored by a per-kind save counter.
    """

    def __init__(self, url: Optional[str] = None, namespace: str = 'shiptrack:v1', client: Optional[Redis] = None):
        super().__init__(namespace)
        self.client = client if client is not None else Redis.from_url(url, decode_responses=True)

    def _write(self, key, record_id, payload):
        try:
            seq = self.client.incr(f"{key}:seq")
            # value and order entry land together or not at all
            pipe = self.client.pipeline(transaction=True)
            pipe.hset(key, record_id, payload)
            pipe.zadd(f"{key}:order", {record_id: seq})
            pipe.execute()
        except RedisError as exc:
            raise StorageUnavailableError(str(exc)) from exc

    def _read_all(self, key):
        try:
            ids = self.client.zrevrange(f"{key}:order", 0, -1)
            if not ids:
                return []
            values = self.client.hmget(key, ids)
        except RedisError as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return [v for v in values if v is not None]

    def _read(self, key, record_id):
        try:
            return self.client.hget(key, record_id)
        except RedisError as exc:
            raise StorageUnavailableError(str(exc)) from exc


class SqlRecordStore(RecordStore):
    """All kinds share the `records` table; the namespaced key goes in `kind`."""

    def __init__(self, dsn: str, namespace: str = 'shiptrack:v1', create_schema: bool = False):
        super().__init__(namespace)
        self.engine, self.SessionLocal = make_sessionmaker(dsn)
        if create_schema:
            Base.metadata.create_all(self.engine)

    def _write(self, key, record_id, payload):
        db = self.SessionLocal()
        try:
            db.execute(delete(StoredRecord).where(StoredRecord.kind == key, StoredRecord.record_id == record_id))
            db.add(StoredRecord(kind=key, record_id=record_id, payload=payload))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageUnavailableError(str(exc)) from exc
        finally:
            db.close()

    def _read_all(self, key):
        db = self.SessionLocal()
        try:
            stmt = select(StoredRecord.payload).where(StoredRecord.kind == key).order_by(StoredRecord.id.desc())
            return list(db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(str(exc)) from exc
        finally:
            db.close()

    def _read(self, key, record_id):
        db = self.SessionLocal()
        try:
            stmt = select(StoredRecord.payload).where(StoredRecord.kind == key, StoredRecord.record_id == record_id)
            return db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(str(exc)) from exc
        finally:
            db.close()


def build_store(settings) -> RecordStore:
    backend = settings.STORE_BACKEND.lower()
    if backend == 'redis':
        return RedisRecordStore(settings.REDIS_URL, namespace=settings.STORE_NAMESPACE)
    if backend == 'sql':
        return SqlRecordStore(settings.POSTGRES_DSN, namespace=settings.STORE_NAMESPACE)
    if backend == 'memory':
        return InMemoryRecordStore(namespace=settings.STORE_NAMESPACE)
    raise ValueError(f"Unknown STORE_BACKEND {settings.STORE_BACKEND!r}")
