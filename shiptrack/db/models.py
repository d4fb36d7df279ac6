from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, UniqueConstraint
from shiptrack.db.session import Base

class StoredRecord(Base):
    __tablename__ = 'records'
    __table_args__ = (UniqueConstraint('kind', 'record_id', name='uq_records_kind_record_id'),)

    # Autoincrement id doubles as save order: an upsert deletes and re-inserts.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
