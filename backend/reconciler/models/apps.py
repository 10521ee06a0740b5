from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from reconciler.core.db import Base
from reconciler.models.mixins import TimestampMixin


class App(TimestampMixin, Base):
    __tablename__ = "apps"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=True, unique=True, index=True)
    # Preferred reporting currency; every persisted figure is converted to it.
    currency = Column(String(3), nullable=False, default="USD")

    connections = relationship(
        "PlatformConnection",
        back_populates="app",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
