"""CLI interface for RecallFlow.

Usage:
    python -m recallflow decks                    List decks
    python -m recallflow import NAME FILE         Create a deck from bulk text
    python -m recallflow export DECK_ID           Print a deck as bulk text
    python -m recallflow study DECK_ID            Start a study session
    python -m recallflow exam DECK_ID -n 20       Take an exam
    python -m recallflow stats                    Show your statistics
    python -m recallflow backup FILE              Write a JSON backup
    python -m recallflow restore FILE             Replace everything from a backup
"""

import argparse
import asyncio
import json
import logging
import random
import time
from pathlib import Path

from backend.backup import export_backup, import_backup
from backend.config import settings
from backend.database import async_session, engine
from backend.models import Base
from backend.srs.exam import ExamSession
from backend.srs.study import StudySession, StudyState
from backend.store import DeckNotFoundError, DeckStore, StoreRecorder
from recallflow.render import format_duration, render_card

QUIT = "q"


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class ElapsedTimer:
    """Turns wall-clock time into whole-second ticks for a session."""

    def __init__(self) -> None:
        self._started = time.monotonic()
        self._accounted = 0

    def take(self) -> int:
        """Whole seconds elapsed since the last call."""
        elapsed = int(time.monotonic() - self._started)
        delta = elapsed - self._accounted
        self._accounted = elapsed
        return delta


def _tick(session: StudySession | ExamSession, timer: ElapsedTimer) -> None:
    seconds = timer.take()
    if seconds > 0:
        session.tick(seconds)


def _ask(prompt: str, choices: tuple[str, ...] = ("1", "2")) -> str:
    """Prompt until one of ``choices`` (or quit) is entered."""
    while True:
        key = input(prompt).strip().lower()
        if key in choices or key == QUIT:
            return key


async def cmd_decks(args: argparse.Namespace) -> None:
    """List decks."""
    await ensure_db()
    async with async_session() as db:
        decks = await DeckStore(db).list_decks()

    if not decks:
        print("\n  No decks yet. Create one with 'import'.\n")
        return
    print()
    for deck in decks:
        print(f"  {deck.id}  {deck.name}")
        print(
            f"    {deck.card_count} cards, {deck.queue_length} queued, "
            f"{deck.total_review_count} reviews, {format_duration(deck.total_study_time_seconds)} studied"
        )
    print()


async def cmd_import(args: argparse.Namespace) -> None:
    """Create a deck from a bulk text file."""
    await ensure_db()
    text = Path(args.file).read_text(encoding="utf-8")
    async with async_session() as db:
        try:
            deck = await DeckStore(db).import_text(args.name, text)
        except ValueError as e:
            print(f"  {e}")
            return
    print(f"  Created deck {deck.id} with {len(deck.cards)} cards.")


async def cmd_export(args: argparse.Namespace) -> None:
    """Print a deck as bulk text."""
    await ensure_db()
    async with async_session() as db:
        try:
            print(await DeckStore(db).export_text(args.deck_id))
        except DeckNotFoundError as e:
            print(f"  {e}")


async def cmd_study(args: argparse.Namespace) -> None:
    """Run an interactive study session."""
    await ensure_db()
    async with async_session() as db:
        store = DeckStore(db)
        try:
            deck = await store.get_deck(args.deck_id)
        except DeckNotFoundError as e:
            print(f"  {e}")
            return

        recorder = StoreRecorder(deck_id=deck.id, mode="STUDY")
        study = StudySession(deck=deck, events=recorder)
        timer = ElapsedTimer()

        print(f"\n  Study: {deck.name}  ({study.remaining} queued)")
        print("  Keys: 1=know/correct  2=don't know/incorrect  q=quit\n")

        while not study.is_empty:
            card = study.current_card
            print(render_card(card.chinese))
            key = _ask("  Know it? [1/2]: ")
            _tick(study, timer)
            if key == QUIT:
                break

            if key == "1":
                study.know()
                print(render_card(card.chinese, card.english, card.note))
                key = _ask("  Were you right? [1/2]: ")
                _tick(study, timer)
                if key == QUIT:
                    break
                study.verdict(key == "1")
            else:
                study.dont_know()
                print(render_card(card.chinese, card.english, card.note))

            feedback = study.last_feedback
            verdict = "Correct" if feedback.is_correct else "Wrong"
            print(f"  {verdict} | moved back {feedback.insert_offset}")
            await recorder.flush(store)

            if input("  [Enter] next: ").strip().lower() == QUIT:
                break
            _tick(study, timer)
            study.advance()
            print()

        if study.state is StudyState.EMPTY:
            print("  Nothing left to review.")
        _tick(study, timer)
        summary = study.exit()
        await recorder.flush(store)

    print("\n  Session Complete!")
    print(
        f"  Reviewed: {summary.reviewed}  Correct: {summary.correct}  "
        f"Accuracy: {summary.accuracy * 100:.0f}%  Time: {format_duration(summary.duration_seconds)}\n"
    )


async def cmd_exam(args: argparse.Namespace) -> None:
    """Run an interactive exam."""
    await ensure_db()
    async with async_session() as db:
        store = DeckStore(db)
        try:
            deck = await store.get_deck(args.deck_id)
        except DeckNotFoundError as e:
            print(f"  {e}")
            return

        recorder = StoreRecorder(deck_id=deck.id, mode="EXAM")
        exam = ExamSession(
            deck=deck,
            events=recorder,
            requested_count=args.count,
            rng=random.Random(args.seed),
        )
        timer = ElapsedTimer()
        print(f"\n  Exam: {deck.name}  ({exam.total} questions)\n")

        while not exam.is_finished:
            card = exam.current_card
            print(f"  [{exam.index + 1}/{exam.total}]")
            print(render_card(card.chinese))
            if input("  [Enter] reveal: ").strip().lower() == QUIT:
                break
            exam.reveal()
            print(render_card(card.chinese, card.english, card.note))
            key = _ask("  Correct? [1/2]: ")
            _tick(exam, timer)
            if key == QUIT:
                break
            exam.verdict(key == "1")
            await recorder.flush(store)
            print()

        _tick(exam, timer)
        summary = exam.exit()
        await recorder.flush(store)

    print("\n  Exam Complete!" if summary.completed else "\n  Exam ended early.")
    print(
        f"  Score: {summary.score}/{summary.answered}  "
        f"Time: {format_duration(summary.duration_seconds)}\n"
    )


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show global and daily statistics."""
    await ensure_db()
    async with async_session() as db:
        store = DeckStore(db)
        totals = await store.global_stats()
        daily = await store.daily_stats()

    print("\n  RecallFlow Statistics")
    print(f"  {'Total cards:':<20} {totals.total_cards}")
    print(f"  {'Total reviews:':<20} {totals.total_review_count}")
    print(f"  {'Total study time:':<20} {format_duration(totals.total_study_time_seconds)}")
    print(f"\n  Today ({daily.day})")
    print(f"  {'Reviews:':<20} {daily.review_count}")
    print(f"  {'Correct / wrong:':<20} {daily.correct_count} / {daily.wrong_count}")
    print(f"  {'Distinct cards:':<20} {daily.distinct_cards}")
    print(f"  {'Study time:':<20} {format_duration(daily.study_time_seconds)}")
    for log in daily.activities:
        print(f"    {log.mode:<6} {log.deck_name}: {log.correct_count}/{log.review_count}")
    print()


async def cmd_backup(args: argparse.Namespace) -> None:
    await ensure_db()
    async with async_session() as db:
        data = await export_backup(DeckStore(db))
    Path(args.file).write_text(data.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    print(f"  Wrote {len(data.decks)} decks to {args.file}")


async def cmd_restore(args: argparse.Namespace) -> None:
    await ensure_db()
    raw = json.loads(Path(args.file).read_text(encoding="utf-8"))
    async with async_session() as db:
        try:
            data = await import_backup(DeckStore(db), raw)
        except ValueError as e:
            print(f"  Restore failed: {e}")
            return
    print(f"  Restored {len(data.decks)} decks.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recallflow",
        description="Phrase flashcards with a self-adjusting review queue",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("decks", help="List decks")

    import_parser = subparsers.add_parser("import", help="Create a deck from bulk text")
    import_parser.add_argument("name", help="Deck name")
    import_parser.add_argument("file", help="Text file: english | chinese | note | progress | position")

    export_parser = subparsers.add_parser("export", help="Print a deck as bulk text")
    export_parser.add_argument("deck_id")

    study_parser = subparsers.add_parser("study", help="Start a study session")
    study_parser.add_argument("deck_id")

    exam_parser = subparsers.add_parser("exam", help="Take an exam")
    exam_parser.add_argument("deck_id")
    exam_parser.add_argument(
        "-n", "--count", type=int, default=settings.default_exam_size, help="Number of questions"
    )
    exam_parser.add_argument("--seed", type=int, default=None, help="Random seed for question order")

    subparsers.add_parser("stats", help="Show your statistics")

    backup_parser = subparsers.add_parser("backup", help="Write a JSON backup")
    backup_parser.add_argument("file")

    restore_parser = subparsers.add_parser("restore", help="Replace all data from a JSON backup")
    restore_parser.add_argument("file")

    return parser


def main() -> None:
    """Entry point for the RecallFlow CLI application."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "decks": cmd_decks,
        "import": cmd_import,
        "export": cmd_export,
        "study": cmd_study,
        "exam": cmd_exam,
        "stats": cmd_stats,
        "backup": cmd_backup,
        "restore": cmd_restore,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
