from sqlalchemy import (
    Column, Integer, String, DateTime, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base

from scoreboard.utils.clock import utcnow

Base = declarative_base()


class CompetitorScoreRow(Base):
    """
    Authoritative current score for one user in one category.
    
    One row per (user_id, category). Rows are created on a user's first
    accepted submission in a category and only ever modified by the ledger.
    """
    __tablename__ = 'competitor_scores'
    
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    category = Column(String(64), nullable=False)
    score = Column(Integer, nullable=False, default=0)
    
    # Time the current score was reached; breaks ties on the leaderboard
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    
    __table_args__ = (
        UniqueConstraint('user_id', 'category', name='uq_competitor_user_category'),
        CheckConstraint('score >= 0', name='ck_competitor_score_non_negative'),
        Index('ix_competitor_category_ranking', 'category', 'score', 'updated_at'),
    )
    
    def __repr__(self):
        return f"<CompetitorScoreRow(user_id='{self.user_id}', category='{self.category}', score={self.score})>"


class ScoreAuditEntry(Base):
    """
    Append-only trail of every accepted score update.
    
    Written in the same transaction as the CompetitorScoreRow change it
    describes. The application never updates or deletes these rows.
    """
    __tablename__ = 'score_audit_log'
    
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    category = Column(String(64), nullable=False)
    old_score = Column(Integer, nullable=False)
    new_score = Column(Integer, nullable=False)
    token_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    
    __table_args__ = (
        Index('ix_audit_user_category_time', 'user_id', 'category', 'created_at'),
        Index('ix_audit_time', 'created_at'),
    )
    
    def __repr__(self):
        return f"<ScoreAuditEntry(user_id='{self.user_id}', category='{self.category}', {self.old_score}->{self.new_score})>"
