from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

# Las columnas DateTime guardan UTC sin zona; el documento JSON conserva el valor con zona.

reservations = Table(
    "reservations",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("booking_number", String(32), nullable=False, unique=True),
    Column("hotel_id", String(64), nullable=False),
    Column("status", String(32), nullable=False),
    Column("payment_status", String(32), nullable=False),
    Column("source", String(64), nullable=False),
    Column("channel_booking_id", String(128)),
    Column("check_in", DateTime, nullable=False),
    Column("check_out", DateTime, nullable=False),
    Column("reserved_until", DateTime),
    Column("document", JSON, nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
    UniqueConstraint("source", "channel_booking_id", name="uq_reservations_channel_reference"),
    Index("ix_reservations_status_reserved_until", "status", "reserved_until"),
    Index("ix_reservations_status_check_in", "status", "check_in"),
    Index("ix_reservations_status_check_out", "status", "check_out"),
)

reservation_audit = Table(
    "reservation_audit",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reservation_id", String(64), nullable=False, index=True),
    Column("kind", String(48), nullable=False),
    Column("timestamp", DateTime, nullable=False),
    Column("document", JSON, nullable=False),
)

inventory_days = Table(
    "inventory_days",
    metadata,
    Column("hotel_id", String(64), primary_key=True),
    Column("room_type_id", String(64), primary_key=True),
    Column("day", Date, primary_key=True),
    Column("document", JSON, nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("updated_at", DateTime),
)

allotment_configs = Table(
    "allotment_configs",
    metadata,
    Column("hotel_id", String(64), primary_key=True),
    Column("room_type_id", String(64), primary_key=True),
    Column("document", JSON, nullable=False),
    Column("version", Integer, nullable=False, default=0),
    Column("updated_at", DateTime),
)

sync_queue = Table(
    "sync_queue",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reservation_id", String(64), nullable=False, index=True),
    Column("channel", String(64), nullable=False),
    Column("target_status", String(32), nullable=False),
    Column("priority", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("max_attempts", Integer, nullable=False, default=3),
    Column("available_at", DateTime, nullable=False),
    Column("locked_by", String(64)),
    Column("last_error", String(1000)),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
    Index("ix_sync_queue_ready", "status", "priority", "available_at"),
)
