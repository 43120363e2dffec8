"""
Card collection store on top of a SQLAlchemy session.

The scheduler never talks to the database; this module loads the collection,
hands cards to it and writes the returned state back, one commit per change.
"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional, Union

from pydantic import ValidationError
from sqlalchemy import literal_column
from sqlalchemy.orm import Session

from cards import matches_query, new_card, utcnow
from models import Card, CardContent, CardDB, ReviewHistory
from spaced_rep import calculate_sm2

logger = logging.getLogger("memocurve.store")


def load_cards(db: Session, query: Optional[str] = None) -> list[CardDB]:
    """
    The whole collection in creation order, optionally filtered by a search string.

    Cards created at the same instant keep their insertion order (SQLite rowid).
    """
    cards = db.query(CardDB).order_by(CardDB.created_at, literal_column("cards.rowid")).all()
    if query:
        cards = [c for c in cards if matches_query(c, query)]
    return cards


def get_card(db: Session, card_id: str) -> Optional[CardDB]:
    return db.query(CardDB).filter(CardDB.id == card_id).first()


def add_card(db: Session, content: CardContent, now: Optional[datetime] = None) -> CardDB:
    record = new_card(content.model_dump(), now=now)
    card = CardDB(**record)
    db.add(card)
    db.commit()
    db.refresh(card)
    logger.info("added %s card %s", card.question_type, card.id)
    return card


def update_card(db: Session, card: CardDB, content: CardContent) -> CardDB:
    """Replace a card's question and answer. Scheduling fields stay as they are."""
    for name, value in content.model_dump().items():
        setattr(card, name, value)
    db.commit()
    db.refresh(card)
    return card


def delete_card(db: Session, card: CardDB) -> None:
    db.delete(card)
    db.commit()


def delete_cards(db: Session, card_ids: Iterable[str]) -> int:
    """Bulk delete. Unknown ids are ignored; returns how many cards went."""
    ids = set(card_ids)
    if not ids:
        return 0
    cards = db.query(CardDB).filter(CardDB.id.in_(ids)).all()
    for card in cards:
        db.delete(card)
    db.commit()
    logger.info("deleted %d cards", len(cards))
    return len(cards)


def delete_all(db: Session) -> int:
    cards = db.query(CardDB).all()
    for card in cards:
        db.delete(card)
    db.commit()
    logger.info("deleted all %d cards", len(cards))
    return len(cards)


def review_card(db: Session, card: CardDB, quality: int, now: Optional[datetime] = None) -> CardDB:
    """Apply one rating and record it, in a single commit."""
    now = now or utcnow()
    card = calculate_sm2(card, quality, now=now)
    db.add(ReviewHistory(card_id=card.id, quality=quality, interval=card.interval, reviewed_at=now))
    db.commit()
    db.refresh(card)
    logger.info("reviewed card %s quality=%d next in %d days", card.id, quality, card.interval)
    return card


# --- JSON import / export ---

def parse_collection(raw: Union[str, bytes]) -> list[dict]:
    """
    Parse an exported collection.

    Unreadable input is treated as an empty collection rather than an error.
    """
    try:
        data = json.loads(raw or "[]")
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning("could not parse card collection, treating it as empty: %s", e)
        return []
    if not isinstance(data, list):
        logger.warning("card collection is a %s, not a list; treating it as empty", type(data).__name__)
        return []
    return [item for item in data if isinstance(item, dict)]


def to_cards(records: Iterable[dict]) -> list[Card]:
    """Normalize raw records into full Card models, skipping unusable ones."""
    cards = []
    for record in records:
        try:
            cards.append(Card.from_record(record))
        except ValidationError as e:
            logger.warning("skipping card record %r: %s", record.get("id"), e.error_count())
    return cards


def import_records(db: Session, records: Iterable[dict]) -> int:
    """Insert or replace cards from raw records. Ids are kept as given."""
    cards = to_cards(records)
    for card in cards:
        db.merge(CardDB(**card.model_dump()))
    db.commit()
    logger.info("imported %d cards", len(cards))
    return len(cards)


def export_records(db: Session) -> list[dict]:
    return [Card.model_validate(c).model_dump(mode="json") for c in load_cards(db)]
