"""
FastAPI backend for the MemoCurve flashcard app.
Serves the card collection and runs reviews through the SM-2 scheduler.
"""

import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cards import answer_preview, utcnow
from config import settings
from models import (
    CardDB, CardCreate, CardUpdate, CardResponse, CardDetailResponse, ReviewRequest,
    IntervalPreview, UpcomingCard, BulkDeleteRequest, StatsResponse, ImportResponse,
    get_engine, init_db, get_session
)
from spaced_rep import (
    InvalidQualityError, collection_stats, days_until, preview_intervals,
    select_due, upcoming_preview,
)
import store

logger = logging.getLogger("memocurve.app")

# Database setup
engine = get_engine(settings.db_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Initialize logging and database
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(engine)
    logger.info("Database initialized at %s", settings.db_path)
    yield
    # Shutdown: cleanup if needed


app = FastAPI(
    title="MemoCurve Flashcard API",
    description="Flashcard app with SM-2 spaced repetition",
    version="1.0.0",
    lifespan=lifespan,
)


# Dependency to get DB session
def get_db():
    session = get_session(engine)
    try:
        yield session
    finally:
        session.close()


# Clock dependency, overridden in tests
def get_clock() -> datetime:
    return utcnow()


def get_card_or_404(card_id: str, db: Session = Depends(get_db)) -> CardDB:
    card = store.get_card(db, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


@app.exception_handler(InvalidQualityError)
async def invalid_quality_handler(request: Request, exc: InvalidQualityError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Routes ---

@app.get("/")
async def root():
    return {"message": "MemoCurve API. Visit /docs for the API reference."}


@app.get("/api/cards", response_model=list[CardResponse])
async def list_cards(q: str | None = None, db: Session = Depends(get_db)):
    """List all flashcards, optionally filtered by answer or question text."""
    return store.load_cards(db, query=q)


@app.post("/api/cards", response_model=CardResponse)
async def create_card(card: CardCreate, db: Session = Depends(get_db), now: datetime = Depends(get_clock)):
    """Create a new flashcard. It is due immediately."""
    return store.add_card(db, card, now=now)


@app.get("/api/cards/{card_id}", response_model=CardResponse)
async def get_card(card: CardDB = Depends(get_card_or_404)):
    """Get a specific card by ID."""
    return card


@app.get("/api/cards/{card_id}/details", response_model=CardDetailResponse)
async def get_card_details(card: CardDB = Depends(get_card_or_404)):
    """Get a specific card with its review history."""
    return card


@app.put("/api/cards/{card_id}", response_model=CardResponse)
async def update_card(
    content: CardUpdate,
    card: CardDB = Depends(get_card_or_404),
    db: Session = Depends(get_db),
):
    """Edit a card's question and answer. Its schedule is kept."""
    return store.update_card(db, card, content)


@app.delete("/api/cards/{card_id}")
async def delete_card(card: CardDB = Depends(get_card_or_404), db: Session = Depends(get_db)):
    """Delete a card."""
    store.delete_card(db, card)
    return {"message": "Card deleted"}


@app.post("/api/cards/bulk-delete")
async def delete_selected(request: BulkDeleteRequest, db: Session = Depends(get_db)):
    """Delete the selected cards."""
    deleted = store.delete_cards(db, request.ids)
    return {"message": f"{deleted} cards deleted", "deleted": deleted}


@app.delete("/api/cards")
async def delete_all_cards(db: Session = Depends(get_db)):
    """Delete every card."""
    deleted = store.delete_all(db)
    return {"message": "All cards deleted", "deleted": deleted}


@app.get("/api/review", response_model=list[CardResponse])
async def get_review_cards(db: Session = Depends(get_db), now: datetime = Depends(get_clock)):
    """Get today's due cards in collection order."""
    return select_due(
        store.load_cards(db), now=now,
        limit=settings.review_limit, shuffle=settings.shuffle_review,
    )


@app.post("/api/review/{card_id}", response_model=CardResponse)
async def review_card(
    review: ReviewRequest,
    card: CardDB = Depends(get_card_or_404),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    """Submit a review result for a card."""
    return store.review_card(db, card, review.quality, now=now)


@app.get("/api/review/{card_id}/intervals", response_model=IntervalPreview)
async def get_interval_preview(card: CardDB = Depends(get_card_or_404)):
    """Days until the next review for each possible rating."""
    return IntervalPreview(card_id=card.id, intervals=preview_intervals(card))


@app.get("/api/upcoming", response_model=list[UpcomingCard])
async def get_upcoming(
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_clock),
):
    """Cards coming due next, soonest first."""
    cards = upcoming_preview(store.load_cards(db), now=now, limit=settings.upcoming_limit if limit is None else limit)
    return [
        UpcomingCard(
            id=c.id,
            question_type=c.question_type,
            question_image=c.question_image,
            answer_preview=answer_preview(c),
            next_review=c.next_review,
            days_until=days_until(c, now),
        )
        for c in cards
    ]


@app.get("/api/stats", response_model=StatsResponse)
async def get_stats(db: Session = Depends(get_db), now: datetime = Depends(get_clock)):
    """Get learning statistics."""
    return collection_stats(store.load_cards(db), now=now)


@app.get("/api/export")
async def export_cards(db: Session = Depends(get_db)):
    """Export the whole collection as JSON."""
    return store.export_records(db)


@app.post("/api/import", response_model=ImportResponse)
async def import_cards(request: Request, db: Session = Depends(get_db)):
    """Import an exported collection. Unreadable input imports nothing."""
    records = store.parse_collection(await request.body())
    return ImportResponse(imported=store.import_records(db, records))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
