"""SQLAlchemy models."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class FeedStatus:
    """Visibility status values for a feed."""
    NORMAL = "normal"
    HIDDEN = "hidden"
    DISABLED = "disabled"


class Feed(Base):
    """Subscribed feed, identified by its URL."""
    __tablename__ = "feeds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False, unique=True)
    name = Column(Text)
    description = Column(Text)
    icon = Column(Text)
    etag = Column(Text)
    last_modified = Column(Text)  # raw Last-Modified header, sent back verbatim
    last_status = Column(Text)
    status = Column(String(20), default=FeedStatus.NORMAL)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    entries = relationship("Entry", back_populates="feed")

    def __repr__(self) -> str:
        return f"Feed(id={self.id}, url='{self.url}')"


class Entry(Base):
    """One normalized item belonging to a feed."""
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    guid = Column(Text, nullable=False, unique=True)
    link = Column(Text)
    title = Column(Text)
    summary = Column(Text)
    content = Column(Text)
    html = Column(Text)  # cached reader-mode markup
    image = Column(Text)
    video = Column(Text)
    embed = Column(Text)
    author = Column(Text)
    published = Column(DateTime)  # naive UTC
    published_raw = Column(Text)
    feed_id = Column(Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    feed = relationship("Feed", back_populates="entries")

    @property
    def iso_published(self):
        """Publication time as an ISO 8601 string, if known."""
        if self.published is None:
            return None
        return self.published.isoformat() + 'Z'

    def __repr__(self) -> str:
        return f"Entry(id={self.id}, guid='{self.guid}')"
