from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from brokerdesk.database import Base, utcnow


class UserAchievement(Base):
    """An unlocked achievement; the catalog itself lives in services.achievements."""

    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_key"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    achievement_key: Mapped[str] = mapped_column(String(50))
    points_awarded: Mapped[int] = mapped_column(default=0)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
