import json
from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from parkbooking.db.session import Base

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]  # index = day_of_week

class Park(Base):
    __tablename__ = "parks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    location: Mapped[str] = mapped_column(String(300), default="")
    # {"Monday": {"from": "09:00", "to": "18:00", "closed": false}, ...}
    working_hours_json: Mapped[str] = mapped_column(Text, default="{}")
    max_booking_days: Mapped[int] = mapped_column(Integer, default=30)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def working_hours(self) -> dict:
        try:
            return json.loads(self.working_hours_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def hours_for_day(self, day_of_week: int) -> dict | None:
        return self.working_hours.get(DAY_NAMES[day_of_week])
