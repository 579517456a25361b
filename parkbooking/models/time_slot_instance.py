from sqlalchemy import String, Integer, Date, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from parkbooking.db.session import Base

class TimeSlotInstance(Base):
    __tablename__ = "time_slot_instances"
    __table_args__ = (
        UniqueConstraint("template_id", "date", name="uq_instance_template_date"),
        CheckConstraint("available_tickets >= 0 AND available_tickets <= ticket_limit", name="ck_instance_available_bounds"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    template_id: Mapped[str] = mapped_column(String(36), index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    ticket_limit: Mapped[int] = mapped_column(Integer)
    available_tickets: Mapped[int] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                                                 onupdate=lambda: datetime.now(timezone.utc))
