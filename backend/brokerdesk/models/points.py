from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from brokerdesk.database import Base, utcnow


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    points: Mapped[int] = mapped_column()  # negative for redemptions
    transaction_type: Mapped[str] = mapped_column(String(20))  # "earned" | "redeemed" | "adjusted"
    category: Mapped[str] = mapped_column(String(30))  # "referral" | "policy_purchase" | "daily_login" | "manual" | ...
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    awarded_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now(), index=True)
