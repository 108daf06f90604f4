from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, ForeignKey, JSON, func
from sqlalchemy.orm import Mapped, mapped_column

from brokerdesk.auth.principal import Principal
from brokerdesk.auth.roles import role_for_privilege_level
from brokerdesk.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    privilege_level: Mapped[int] = mapped_column(default=3)  # 0 SuperAdmin ... 5 Visitor
    additional_roles: Mapped[list] = mapped_column(JSON, default=list)
    organization_id: Mapped[int | None] = mapped_column(ForeignKey("organizations.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Agent profile
    license_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    specializations: Mapped[list] = mapped_column(JSON, default=list)
    bio: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now())

    @property
    def role(self) -> str:
        return role_for_privilege_level(self.privilege_level).value

    def to_principal(self) -> Principal:
        return Principal.model_validate({
            "id": self.id,
            "email": self.email,
            "organization_id": self.organization_id,
            "privilege_level": self.privilege_level,
            "additional_roles": self.additional_roles or [],
            "first_name": self.first_name,
            "last_name": self.last_name,
        })
