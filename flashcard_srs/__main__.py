"""CLI interface for Flashcard SRS.

Usage:
    python -m flashcard_srs review              Start a review session
    python -m flashcard_srs stats               Show your statistics
    python -m flashcard_srs due                 Show how many cards are due
    python -m flashcard_srs add "title" "point" Add a card by hand
    python -m flashcard_srs generate "notes"    Generate a card with the LLM
    python -m flashcard_srs serve               Run the HTTP API
"""

import argparse
import asyncio
import logging
import time

import uvicorn
from sqlalchemy import select

from backend.card_generator import CardDraft, CardGenerator
from backend.config import utcnow
from backend.database import async_session, init_db
from backend.errors import GenerationError, SchedulingError
from backend.llm_client import get_llm_client
from backend.models.study_card import StudyCard
from backend.models.user import User
from backend.srs.ebbinghaus import Difficulty, current_interval_hours, preview_intervals
from backend.srs.queue import get_due_cards
from backend.srs.recorder import ReviewRecorder, enroll_card
from backend.srs.stats import get_user_stats
from backend.srs.store import LearningRecordStore

DIFFICULTY_KEYS = {
    "1": Difficulty.AGAIN,
    "2": Difficulty.HARD,
    "3": Difficulty.NORMAL,
    "4": Difficulty.EASY,
}


def format_hours(hours: float) -> str:
    if hours < 24:
        return f"{hours:.0f}h"
    return f"{hours / 24:.1f}d"


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


async def ensure_user(username: str = "learner") -> int:
    """Ensure there's a default user and return the ID."""
    async with async_session() as db:
        result = await db.execute(select(User).order_by(User.id).limit(1))
        user = result.scalar_one_or_none()
        if user:
            return user.id

        user = User(username=username)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user.id


async def save_draft(user_id: int, draft: CardDraft) -> int:
    """Store a card and enroll the user in it. Returns the card ID."""
    async with async_session() as db:
        store = LearningRecordStore(db)
        async with store.transaction():
            card = StudyCard(
                owner_id=user_id,
                title=draft.title,
                subject=draft.subject,
                core_point=draft.core_point,
                confusion_point=draft.confusion_point,
                example=draft.example,
                difficulty=draft.difficulty,
                tags=",".join(draft.tags) or None,
                sketch_prompt=draft.sketch_prompt,
            )
            await store.add(card)
            await enroll_card(store, user_id, card.id)
        return card.id


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive review session over the due queue."""
    await ensure_db()
    user_id = await ensure_user()
    recorder = ReviewRecorder()

    async with async_session() as db:
        store = LearningRecordStore(db)
        queue = await get_due_cards(store, user_id, limit=args.max_cards)

        if queue.total == 0:
            print("\nNo cards due for review. You're all caught up!")
            return

        print("\n  Review Session")
        print(f"  {queue.total} cards due\n")
        print("  Ratings: 1=Again  2=Hard  3=Normal  4=Easy")
        print("  Type 'q' to quit\n")

        reviewed = 0
        correct = 0

        for i, record in enumerate(queue.records, 1):
            card = record.card
            label = f"  [{i}/{queue.total}] {card.title} ({card.subject})"
            if record.view_count == 0:
                label += " (NEW)"
            print(label)

            start_time = time.monotonic()
            if input("  Press enter to reveal, 'q' to quit: ").strip().lower() == "q":
                print("\n  Session ended early.")
                break

            print(f"\n  {card.core_point}")
            if card.confusion_point:
                print(f"  Watch out: {card.confusion_point}")
            if card.example:
                print(f"  Example: {card.example}")

            previews = preview_intervals(
                current_interval_hours(record), record.mastery_level, record.view_count, utcnow()
            )
            print(
                "  "
                + "  ".join(
                    f"{key}={d.value} ({format_hours(previews[d].next_interval_hours)})"
                    for key, d in DIFFICULTY_KEYS.items()
                )
            )

            is_correct = input("  Did you get it right? [Y/n]: ").strip().lower() != "n"
            default_key = "3" if is_correct else "1"
            key = input(f"  Rate [1-4, enter={default_key}]: ").strip() or default_key
            difficulty = DIFFICULTY_KEYS.get(key, DIFFICULTY_KEYS[default_key])
            time_spent = int(time.monotonic() - start_time)

            result = await recorder.record_review(
                store,
                user_id=user_id,
                card_id=card.id,
                difficulty=difficulty,
                is_correct=is_correct,
                time_spent_seconds=time_spent,
            )
            reviewed += 1
            correct += int(is_correct)
            print(
                f"  Mastery {result.record.mastery_level}%, "
                f"next review in {format_hours(result.next_interval_hours)}\n"
            )

    accuracy = correct / reviewed * 100 if reviewed else 0
    print("\n  Session Complete!")
    print(f"  Reviewed: {reviewed}  Correct: {correct}  Accuracy: {accuracy:.0f}%\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show learner statistics."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        stats = await get_user_stats(LearningRecordStore(db), user_id)

    print("\n  Flashcard SRS Statistics")
    print(f"  {'Total cards:':<20} {stats.total_cards}")
    print(f"  {'New:':<20} {stats.new_cards}")
    print(f"  {'Learning:':<20} {stats.learning_cards}")
    print(f"  {'Reviewing:':<20} {stats.review_cards}")
    print(f"  {'Mastered:':<20} {stats.mastered_cards}")
    print(f"  {'Due now:':<20} {stats.due_cards}")
    print(f"  {'Reviewed today:':<20} {stats.today_reviewed}")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a card by hand."""
    await ensure_db()
    user_id = await ensure_user()
    draft = CardDraft(
        title=args.title,
        subject=args.subject,
        core_point=args.core_point,
        confusion_point=args.confusion or None,
        example=args.example or None,
        tags=[t.strip() for t in args.tags.split(",") if t.strip()],
    )
    card_id = await save_draft(user_id, draft)
    print(f"  Added card {card_id}: {args.title} (first review in 1h)")


async def cmd_generate(args: argparse.Namespace) -> None:
    """Generate a card from study notes with the LLM."""
    await ensure_db()
    user_id = await ensure_user()
    generator = CardGenerator(get_llm_client())
    draft = await asyncio.to_thread(generator.generate, args.text, args.subject)
    card_id = await save_draft(user_id, draft)
    print(f"  Generated card {card_id}: {draft.title}")
    print(f"  {draft.core_point}")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()
    user_id = await ensure_user()

    async with async_session() as db:
        stats = await get_user_stats(LearningRecordStore(db), user_id)

    print(f"  {stats.due_cards} cards due, {stats.today_reviewed} reviewed today")


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the HTTP API with uvicorn."""
    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=args.reload)


def main() -> None:
    """Entry point for the Flashcard SRS CLI application."""
    parser = argparse.ArgumentParser(
        prog="flashcard_srs",
        description="Flashcard study assistant with forgetting-curve reviews",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a review session")
    review_parser.add_argument("--max-cards", type=int, default=20, help="Max cards per session")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # add
    add_parser = subparsers.add_parser("add", help="Add a card by hand")
    add_parser.add_argument("title", help="Card title")
    add_parser.add_argument("core_point", help="The key point to remember")
    add_parser.add_argument("-s", "--subject", default="general", help="Subject")
    add_parser.add_argument("-c", "--confusion", default="", help="Common confusion")
    add_parser.add_argument("-e", "--example", default="", help="Example")
    add_parser.add_argument("-t", "--tags", default="", help="Comma separated tags")

    # generate
    gen_parser = subparsers.add_parser("generate", help="Generate a card from notes with the LLM")
    gen_parser.add_argument("text", help="Study material")
    gen_parser.add_argument("-s", "--subject", default=None, help="Subject")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    if args.command == "serve":
        cmd_serve(args)
        return

    cmd_map = {
        "review": cmd_review,
        "stats": cmd_stats,
        "due": cmd_due,
        "add": cmd_add,
        "generate": cmd_generate,
    }

    try:
        asyncio.run(cmd_map[args.command](args))
    except (SchedulingError, GenerationError) as exc:
        parser.exit(1, f"  Error: {exc}\n")


if __name__ == "__main__":
    main()
