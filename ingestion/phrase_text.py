"""Pipe-delimited bulk text format for phrase cards.

One card per line::

    english | chinese | note | progress | position

Only the first two fields are required. ``progress`` seeds the streak
counters (positive = consecutive correct, negative = consecutive wrong) and
``position`` seeds the queue order: lines with a position come first,
ordered by position, then the rest; ties keep their line order.
"""

import logging
import re
from dataclasses import dataclass

from backend.srs.records import CardRecord, DeckRecord, new_card_id

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|"
_LEADING_INT = re.compile(r"[+-]?\d+")


@dataclass
class ParsedPhrase:
    """One parsed line of bulk text."""

    english: str
    chinese: str
    note: str = ""
    progress: int = 0
    position: int | None = None
    line_index: int = 0

    @property
    def consecutive_correct(self) -> int:
        return self.progress if self.progress > 0 else 0

    @property
    def consecutive_wrong(self) -> int:
        return -self.progress if self.progress < 0 else 0

    @property
    def key(self) -> str:
        """Matching key against existing cards."""
        return self.english.strip().lower()


def _parse_int(value: str) -> int | None:
    """Parse a leading integer the way lenient form input does ("3x" -> 3)."""
    match = _LEADING_INT.match(value.strip())
    return int(match.group()) if match else None


def parse_line(line: str, line_index: int = 0) -> ParsedPhrase | None:
    """Parse a single line. Returns None for lines with fewer than two fields."""
    parts = [part.strip() for part in line.split(FIELD_SEPARATOR)]
    if len(parts) < 2:
        return None

    progress = 0
    if len(parts) >= 4 and parts[3]:
        progress = _parse_int(parts[3]) or 0

    position = None
    if len(parts) >= 5 and parts[4]:
        position = _parse_int(parts[4])

    return ParsedPhrase(
        english=parts[0],
        chinese=parts[1],
        note=parts[2] if len(parts) >= 3 else "",
        progress=progress,
        position=position,
        line_index=line_index,
    )


def parse_phrase_text(text: str) -> list[ParsedPhrase]:
    """Parse bulk text into phrases, in line order. Blank lines are skipped."""
    lines = [line for line in text.splitlines() if line.strip()]
    parsed = []
    for index, line in enumerate(lines):
        item = parse_line(line, index)
        if item is None:
            logger.debug("Ignoring line %d without a translation: %r", index, line)
            continue
        parsed.append(item)
    return parsed


def sort_by_position(items: list[ParsedPhrase], existing_keys: set[str] | None = None) -> list[ParsedPhrase]:
    """Order parsed phrases for the queue.

    Explicit positions come before implicit ones. On equal explicit positions,
    phrases not in ``existing_keys`` come first; after that line order wins.
    """
    existing_keys = existing_keys or set()

    def sort_key(item: ParsedPhrase) -> tuple:
        if item.position is None:
            return (1, 0, 0, item.line_index)
        is_old = 1 if item.key in existing_keys else 0
        return (0, item.position, is_old, item.line_index)

    return sorted(items, key=sort_key)


def build_cards(items: list[ParsedPhrase]) -> list[CardRecord]:
    """Create new cards from parsed phrases, in queue order."""
    cards = []
    for item in sort_by_position(items):
        correct, wrong = item.consecutive_correct, item.consecutive_wrong
        cards.append(
            CardRecord(
                id=new_card_id(),
                english=item.english,
                chinese=item.chinese,
                note=item.note,
                consecutive_correct=correct,
                consecutive_wrong=wrong,
                total_reviews=correct + wrong,
            )
        )
    return cards


def cards_from_text(text: str) -> list[CardRecord]:
    """Parse bulk text straight into new cards.

    Raises:
        ValueError: If no line could be parsed.
    """
    cards = build_cards(parse_phrase_text(text))
    if not cards:
        raise ValueError("No phrases found; expected lines like 'english | chinese'")
    return cards


def format_card(card: CardRecord, position: int) -> str:
    progress = 0
    if card.consecutive_correct > 0:
        progress = card.consecutive_correct
    elif card.consecutive_wrong > 0:
        progress = -card.consecutive_wrong
    return f"{card.english} | {card.chinese} | {card.note or ''} | {progress} | {position}"


def export_phrase_text(deck: DeckRecord) -> str:
    """Write a deck as bulk text: queued cards in queue order, then the rest."""
    ordered: list[CardRecord] = []
    seen: set[str] = set()
    for card_id in deck.queue:
        card = deck.find(card_id)
        if card is not None and card.id not in seen:
            ordered.append(card)
            seen.add(card.id)
    ordered.extend(card for card in deck.cards if card.id not in seen)
    return "\n".join(format_card(card, index) for index, card in enumerate(ordered))


def apply_batch_edit(deck: DeckRecord, text: str) -> DeckRecord:
    """Replace a deck's cards and queue with the contents of bulk text.

    Lines whose English text matches an existing card (case-insensitively)
    keep that card's id, review total and timestamp; everything else becomes
    a new card. Cards absent from the text are dropped.
    """
    existing = {card.english.strip().lower(): card for card in deck.cards}
    items = sort_by_position(parse_phrase_text(text), set(existing))

    cards: list[CardRecord] = []
    matched: set[str] = set()
    for item in items:
        correct, wrong = item.consecutive_correct, item.consecutive_wrong
        old = existing.get(item.key)
        if old is not None and old.id in matched:
            logger.debug("Ignoring repeated line for %r", item.english)
            continue
        if old is not None:
            matched.add(old.id)
            card = CardRecord(
                id=old.id,
                english=item.english,
                chinese=item.chinese,
                note=item.note,
                consecutive_correct=correct,
                consecutive_wrong=wrong,
                total_reviews=max(old.total_reviews, correct + wrong),
                last_reviewed_at=old.last_reviewed_at,
            )
        else:
            card = CardRecord(
                id=new_card_id(),
                english=item.english,
                chinese=item.chinese,
                note=item.note,
                consecutive_correct=correct,
                consecutive_wrong=wrong,
                total_reviews=correct + wrong,
            )
        cards.append(card)

    logger.info(
        "Batch edit of deck %s: %d lines -> %d cards (%d previously)",
        deck.id,
        len(items),
        len(cards),
        len(deck.cards),
    )
    return DeckRecord(id=deck.id, name=deck.name, cards=cards, queue=[card.id for card in cards])
