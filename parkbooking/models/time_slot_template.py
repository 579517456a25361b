from sqlalchemy import String, Integer, Boolean, Date, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from parkbooking.db.session import Base

class TimeSlotTemplate(Base):
    __tablename__ = "time_slot_templates"
    __table_args__ = (
        UniqueConstraint("park_id", "days_of_week", "start_time", "end_time", name="uq_template_park_days_times"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    park_id: Mapped[str] = mapped_column(String(36), index=True)
    # comma-separated, sorted
    pricing_ids: Mapped[str] = mapped_column(String(800))
    # comma-separated days, sorted: 0=Sun..6=Sat
    days_of_week: Mapped[str] = mapped_column(String(20))
    start_time: Mapped[str] = mapped_column(String(5))  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5))    # HH:MM
    ticket_limit: Mapped[int] = mapped_column(Integer)
    price_adjustment: Mapped[int] = mapped_column(Integer, default=0)
    valid_from: Mapped[date] = mapped_column(Date)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def days(self) -> list[int]:
        return [int(x) for x in (self.days_of_week or "").split(",") if x.strip().isdigit()]

    @property
    def pricing_id_list(self) -> list[str]:
        return [p.strip() for p in (self.pricing_ids or "").split(",") if p.strip()]
