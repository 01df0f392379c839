from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid_utils
import uuid


def generate_uuid7():
    """Generate UUIDv7 and convert to standard Python UUID"""
    uuid7_obj = uuid_utils.uuid7()
    return uuid.UUID(str(uuid7_obj))

Base = declarative_base()


class Article(Base):
    __tablename__ = 'articles'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid7)
    title = Column(String(500), nullable=False)
    link = Column(String(2000), unique=True, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    comments = Column(Integer, nullable=False, default=0)
    author = Column(String(200), nullable=False, default="Unknown")
    rank = Column(Integer, nullable=False, default=0)
    captured_at = Column(DateTime, nullable=False, index=True)
    published_at = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_articles_active_captured', 'is_active', 'captured_at'),
    )

    def __repr__(self):
        return f"<Article(id={self.id}, title='{(self.title or '')[:30]}...', link='{self.link}')>"


class AssetQuote(Base):
    __tablename__ = 'asset_quotes'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid7)
    name = Column(String(200), nullable=False)
    symbol = Column(String(50), nullable=False)
    price = Column(Float, nullable=False, default=0)
    market_cap = Column(Float, nullable=False, default=0)
    change_24h = Column(Float, nullable=False, default=0)
    volume_24h = Column(Float, nullable=False, default=0)
    rank = Column(Integer, nullable=False, default=0, index=True)
    # 1-based position in the fetched payload
    position = Column(Integer, nullable=False, default=0)
    image = Column(String(2000), nullable=False, default="")
    captured_at = Column(DateTime, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Composite indexes for the freshness-window lookup and active listings
    __table_args__ = (
        Index('ix_asset_quotes_symbol_captured', 'symbol', 'captured_at'),
        Index('ix_asset_quotes_active_captured', 'is_active', 'captured_at'),
    )

    def __repr__(self):
        return f"<AssetQuote(id={self.id}, symbol='{self.symbol}', price={self.price})>"
