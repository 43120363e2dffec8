"""
Card records: SQLAlchemy tables for cards and their review history, and the
pydantic models that validate free-answer and choice questions on the way in.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, JSON, create_engine, ForeignKey
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool

from cards import (
    QuestionType,
    DEFAULT_EASE_FACTOR,
    DEFAULT_INTERVAL,
    DEFAULT_REPETITIONS,
    MAX_CHOICES,
    MIN_CHOICES,
    clean_choices,
    normalize_card,
    utcnow,
)

Base = declarative_base()

# SQLAlchemy ORM Model
class CardDB(Base):
    __tablename__ = "cards"

    id = Column(String(64), primary_key=True)
    question_type = Column(String(16), nullable=False, default=QuestionType.FREE)
    question_image = Column(Text, nullable=True)  # data URL or link, opaque here
    question_text = Column(Text, nullable=True)
    answer_text = Column(Text, nullable=False, default="")
    choices = Column(JSON, nullable=False, default=list)
    correct_choice_index = Column(Integer, nullable=True)

    # SM-2 Spaced Repetition fields
    ease_factor = Column(Float, default=DEFAULT_EASE_FACTOR)
    interval = Column(Integer, default=DEFAULT_INTERVAL)        # Days until next review
    repetitions = Column(Integer, default=DEFAULT_REPETITIONS)  # Successful reviews in a row
    next_review = Column(DateTime, nullable=True)               # NULL = due now

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationship to history
    history = relationship(
        "ReviewHistory", back_populates="card",
        cascade="all, delete-orphan", order_by="ReviewHistory.id",
    )


class ReviewHistory(Base):
    __tablename__ = "review_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(String(64), ForeignKey("cards.id"), nullable=False)
    quality = Column(Integer, nullable=False)  # 0-3
    interval = Column(Integer, nullable=False)  # interval the review produced
    reviewed_at = Column(DateTime, default=utcnow)

    card = relationship("CardDB", back_populates="history")


# Pydantic models for API
class CardContent(BaseModel):
    """Question and answer of a card, validated per question type."""
    question_type: str = QuestionType.FREE
    question_image: Optional[str] = None
    question_text: Optional[str] = None
    answer_text: str = ""
    choices: list[str] = Field(default_factory=list, max_length=MAX_CHOICES)
    correct_choice_index: Optional[int] = None

    @model_validator(mode="after")
    def check_answer(self):
        if self.question_type not in QuestionType.ALL:
            raise ValueError(f"unknown question_type {self.question_type!r}")
        if self.question_type == QuestionType.FREE:
            self.answer_text = self.answer_text.strip()
            if not self.answer_text:
                raise ValueError("a free-answer card needs an answer")
            self.choices = []
            self.correct_choice_index = None
        else:
            self.choices = clean_choices(self.question_type, self.choices, self.correct_choice_index)
        return self


class CardCreate(CardContent):
    pass


class CardUpdate(CardContent):
    pass


class Card(BaseModel):
    """A complete card record, as loaded from the store or an export file."""
    model_config = ConfigDict(from_attributes=True, coerce_numbers_to_str=True)

    id: str
    question_type: str = QuestionType.FREE
    question_image: Optional[str] = None
    question_text: Optional[str] = None
    answer_text: str = ""
    choices: list[str] = Field(default_factory=list)
    correct_choice_index: Optional[int] = None
    repetitions: int = Field(DEFAULT_REPETITIONS, ge=0)
    ease_factor: float = Field(DEFAULT_EASE_FACTOR, ge=1.3)
    interval: int = Field(DEFAULT_INTERVAL, ge=1)
    next_review: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("next_review", "created_at")
    @classmethod
    def as_naive_utc(cls, value):
        # Browser exports carry a "Z" suffix; the database stores naive UTC
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_question(self):
        if self.question_type not in QuestionType.ALL:
            raise ValueError(f"unknown question_type {self.question_type!r}")
        filled = [c for c in self.choices if c.strip()]
        if self.question_type in QuestionType.CHOICE and len(filled) >= MIN_CHOICES:
            index = self.correct_choice_index
            if index is None or not 0 <= index < len(self.choices):
                raise ValueError("correct_choice_index is out of range")
        return self

    @classmethod
    def from_record(cls, record: dict) -> "Card":
        """Build a full card from a stored or exported dict, legacy ones included."""
        return cls.model_validate(normalize_card(record))


class CardResponse(Card):
    pass


class ReviewHistoryResponse(BaseModel):
    id: int
    quality: int
    interval: int
    reviewed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CardDetailResponse(CardResponse):
    """Extended card response with history."""
    history: list[ReviewHistoryResponse] = []


class ReviewRequest(BaseModel):
    quality: int = Field(..., ge=0, le=3, description="0=again, 1=hard, 2=normal, 3=easy")


class IntervalPreview(BaseModel):
    """Days until the next review for each rating, indexed by quality."""
    card_id: str
    intervals: list[int]


class UpcomingCard(BaseModel):
    id: str
    question_type: str
    question_image: Optional[str] = None
    answer_preview: str
    next_review: datetime
    days_until: int


class BulkDeleteRequest(BaseModel):
    ids: list[str]


class StatsResponse(BaseModel):
    total: int
    due: int
    new: int
    learned: int
    mastered: int


class ImportResponse(BaseModel):
    imported: int


# Database setup
def get_engine(db_path: str = "flashcards.db"):
    if db_path == ":memory:":
        # One shared connection so every session sees the same in-memory database
        return create_engine(
            "sqlite://", echo=False,
            connect_args={"check_same_thread": False}, poolclass=StaticPool,
        )
    return create_engine(f"sqlite:///{db_path}", echo=False, connect_args={"check_same_thread": False})


def init_db(engine):
    Base.metadata.create_all(engine)


def get_session(engine):
    Session = sessionmaker(bind=engine)
    return Session()
