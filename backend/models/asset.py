"""Asset model."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, BigInteger, Boolean, Column, String, Uuid

from backend.database import Base, UTCDateTime


class Asset(Base):
    """Asset model for a stored 3D model file and its descriptive metadata."""

    __tablename__ = "assets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    file_url = Column(String(1024), nullable=False)
    type = Column(String(10), nullable=False, index=True)
    size = Column(BigInteger, nullable=False)
    tags = Column(JSON, nullable=True)
    uploaded_at = Column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    # Set while a delete is in flight; cleared again if the blob cannot be removed
    pending_delete = Column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        """String representation of Asset."""
        return f"<Asset(id={self.id}, name={self.name}, type={self.type})>"
