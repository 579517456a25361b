from sqlalchemy import String, Integer, Date, DateTime, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from parkbooking.db.session import Base

class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # at most one pending cart per user
        Index("uq_carts_user_pending", "user_id", unique=True,
              postgresql_where=text("status = 'pending'"),
              sqlite_where=text("status = 'pending'")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, completed, cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))


class CartItem(Base):
    __tablename__ = "cart_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    cart_id: Mapped[str] = mapped_column(String(36), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    park_id: Mapped[str] = mapped_column(String(36))
    pricing_id: Mapped[str] = mapped_column(String(36))
    pricing_name: Mapped[str] = mapped_column(String(120), default="")
    time_slot_instance_id: Mapped[str] = mapped_column(String(36), index=True)

    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[int] = mapped_column(Integer)
    total_price: Mapped[int] = mapped_column(Integer)

    # snapshot of the instance at add time
    date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
