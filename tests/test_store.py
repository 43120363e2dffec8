"""Tests for store.py -- the SQLite card collection."""

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import store
from models import Card, CardCreate, CardUpdate, get_engine, get_session, init_db
from spaced_rep import select_due, upcoming_preview

NOW = datetime(2026, 3, 1, 9, 30)


def _make_db():
    engine = get_engine(':memory:')
    init_db(engine)
    return get_session(engine)


def _free(answer='Paris', question='Capital of France?'):
    return CardCreate(question_type='free', question_text=question, answer_text=answer)


def test_add_and_load_in_creation_order():
    db = _make_db()
    first = store.add_card(db, _free('A'), now=NOW)
    second = store.add_card(db, _free('B'), now=NOW + timedelta(minutes=1))
    cards = store.load_cards(db)
    assert [c.id for c in cards] == [first.id, second.id]
    assert first.repetitions == 0
    assert first.ease_factor == 2.5
    assert first.interval == 1
    assert first.next_review == NOW


def test_cards_created_at_the_same_time_keep_insertion_order():
    db = _make_db()
    for answer in ('C', 'A', 'B', 'D'):
        store.add_card(db, _free(answer), now=NOW)
    assert [c.answer_text for c in store.load_cards(db)] == ['C', 'A', 'B', 'D']


def test_load_cards_with_query():
    db = _make_db()
    store.add_card(db, _free('Paris'), now=NOW)
    store.add_card(db, CardCreate(question_type='multi', choices=['Tokyo', 'Kyoto'], correct_choice_index=0), now=NOW)
    assert [c.answer_text for c in store.load_cards(db, query='par')] == ['Paris']
    assert len(store.load_cards(db, query='tok')) == 1


def test_review_writes_back_and_records_history():
    db = _make_db()
    card = store.add_card(db, _free(), now=NOW)
    for quality in (3, 3, 3):
        card = store.review_card(db, card, quality, now=NOW)
    assert card.repetitions == 3
    assert card.interval == 8
    assert card.next_review == NOW + timedelta(days=8)
    assert [h.quality for h in card.history] == [3, 3, 3]
    assert [h.interval for h in card.history] == [1, 3, 8]


def test_update_keeps_schedule():
    db = _make_db()
    card = store.add_card(db, _free(), now=NOW)
    card = store.review_card(db, card, 2, now=NOW)
    card = store.update_card(db, card, CardUpdate(question_type='multi', choices=['a', 'b'], correct_choice_index=1))
    assert card.question_type == 'multi'
    assert card.answer_text == ''
    assert card.repetitions == 1
    assert card.next_review == NOW + timedelta(days=1)


def test_bulk_and_full_delete():
    db = _make_db()
    ids = [store.add_card(db, _free(str(i)), now=NOW).id for i in range(4)]
    assert store.delete_cards(db, [ids[0], ids[2], 'missing']) == 2
    assert [c.id for c in store.load_cards(db)] == [ids[1], ids[3]]
    assert store.delete_cards(db, []) == 0
    assert store.delete_all(db) == 2
    assert store.load_cards(db) == []


def test_delete_removes_history():
    db = _make_db()
    card = store.add_card(db, _free(), now=NOW)
    store.review_card(db, card, 1, now=NOW)
    store.delete_card(db, card)
    assert store.get_card(db, card.id) is None


# ============================================================================
# Import / export
# ============================================================================

def test_parse_collection_fails_soft():
    assert store.parse_collection('{not json') == []
    assert store.parse_collection(b'\xff\xfe') == []
    assert store.parse_collection('{"id": "x"}') == []
    assert store.parse_collection('') == []
    assert store.parse_collection('[{"id": "x"}, 3]') == [{'id': 'x'}]


def test_import_legacy_browser_records():
    db = _make_db()
    records = [
        {
            'id': 1700000000000,
            'questionText': 'Capital of France?',
            'answer': 'Paris',
            'repetitions': 2,
            'easeFactor': 2.36,
            'interval': 3,
            'nextReview': '2026-03-04T09:30:00.000Z',
            'createdAt': '2026-02-20T08:00:00.000Z',
        },
        {'id': 'bad', 'easeFactor': 0.5},
        {'answer': 'no id'},
    ]
    assert store.import_records(db, records) == 1
    card = store.get_card(db, '1700000000000')
    assert card.question_type == 'free'
    assert card.answer_text == 'Paris'
    assert card.ease_factor == 2.36
    assert card.next_review == datetime(2026, 3, 4, 9, 30)
    assert card.created_at == datetime(2026, 2, 20, 8, 0)


def test_import_replaces_existing_ids():
    db = _make_db()
    store.import_records(db, [{'id': 'c1', 'question_type': 'free', 'answer_text': 'old'}])
    store.import_records(db, [{'id': 'c1', 'question_type': 'free', 'answer_text': 'new'}])
    cards = store.load_cards(db)
    assert len(cards) == 1
    assert cards[0].answer_text == 'new'


def test_export_round_trip():
    db = _make_db()
    store.add_card(db, _free(), now=NOW)
    choice = store.add_card(
        db,
        CardCreate(question_type='four', question_image='data:image/png;base64,AAAA',
                   choices=['a', 'b', 'c', 'd'], correct_choice_index=2),
        now=NOW + timedelta(seconds=1),
    )
    store.review_card(db, choice, 0, now=NOW)
    exported = store.export_records(db)

    other = _make_db()
    assert store.import_records(other, store.parse_collection(json.dumps(exported))) == 2
    assert store.export_records(other) == exported


def test_imported_card_without_next_review_is_due():
    db = _make_db()
    store.import_records(db, [{'id': 'c1', 'answer': 'x'}])
    card = store.get_card(db, 'c1')
    assert card.next_review is None
    assert card.interval == 1
    assert card.repetitions == 0


def test_import_skips_choice_cards_with_bad_correct_index():
    db = _make_db()
    records = [
        {'id': 'bad_four', 'question_type': 'four', 'choices': ['a', 'b', 'c', 'd'], 'correct_choice_index': 9},
        {'id': 'no_index', 'question_type': 'multi', 'choices': ['a', 'b'], 'correct_choice_index': None},
        {'id': 'negative', 'question_type': 'multi', 'choices': ['a', 'b'], 'correct_choice_index': -1},
        {'id': 'bogus', 'question_type': 'bogus', 'answer_text': 'x'},
        {'id': 'good', 'question_type': 'multi', 'choices': ['a', 'b', 'c'], 'correct_choice_index': 2},
    ]
    assert store.import_records(db, records) == 1
    assert [c.id for c in store.load_cards(db)] == ['good']


def test_import_keeps_unfinished_choice_cards():
    """Fewer than two filled choices: there is no correct index to check yet."""
    db = _make_db()
    records = [{'id': 'draft', 'question_type': 'four', 'choices': ['a', '', '', ''], 'correct_choice_index': None}]
    assert store.import_records(db, records) == 1


def test_legacy_record_can_be_scheduled():
    record = {'id': 'a', 'answer': 'x', 'nextReview': '2026-03-04T09:30:00.000Z'}
    card = Card.from_record(record)
    assert card.question_type == 'free'
    assert card.answer_text == 'x'
    assert card.repetitions == 0
    assert card.ease_factor == 2.5
    assert card.interval == 1
    assert card.next_review == datetime(2026, 3, 4, 9, 30)

    assert select_due([card], NOW) == []
    assert select_due([card], datetime(2026, 3, 4, 9, 30)) == [card]
    assert upcoming_preview([card], NOW) == [card]
