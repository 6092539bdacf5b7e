import os
import uuid
import logging as log
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import DateTime, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()


class Base(DeclarativeBase):
    pass


class ImageMetadata(Base):
    __tablename__ = "image_metadata"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


def build_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, or every session sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


class MetadataRepository:
    def __init__(self, url: Optional[str] = None):
        self.url = url or os.getenv("DATABASE_URL", "sqlite:///./ecoscan.db")
        self.engine = build_engine(self.url)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def insert(self, filename: str) -> ImageMetadata:
        with self.Session.begin() as session:
            row = ImageMetadata(filename=filename)
            session.add(row)
        log.info("Stored metadata %s for %s", row.id, filename)
        return row

    def get(self, image_id: str) -> Optional[ImageMetadata]:
        with self.Session() as session:
            return session.get(ImageMetadata, image_id)

    def delete(self, image_id: str) -> bool:
        with self.Session.begin() as session:
            row = session.get(ImageMetadata, image_id)
            if row is None:
                return False
            session.delete(row)
        log.info("Deleted metadata %s", image_id)
        return True
