from sqlalchemy import String, Integer, Boolean, Date, DateTime, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from parkbooking.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_booking_quantity_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    contact_email: Mapped[str] = mapped_column(String(320), default="")

    park_id: Mapped[str] = mapped_column(String(36), index=True)
    pricing_id: Mapped[str] = mapped_column(String(36))
    time_slot_instance_id: Mapped[str] = mapped_column(String(36), index=True)
    cart_id: Mapped[str] = mapped_column(String(36), index=True, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer)
    total_price: Mapped[int] = mapped_column(Integer)
    date: Mapped[date] = mapped_column(Date, index=True)
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))

    status: Mapped[str] = mapped_column(String(20), default="pending")          # pending, confirmed, cancelled
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, paid, failed
    payment_id: Mapped[str | None] = mapped_column(String(120), index=True, nullable=True)  # gateway checkout id
    payment_method: Mapped[str | None] = mapped_column(String(40), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(10), nullable=True)

    ticket_code: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)  # data:image/png;base64,...

    # True while this booking's quantity is deducted from the instance counter
    inventory_committed: Mapped[bool] = mapped_column(Boolean, default=False)

    used: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
