"""CLI for exercising the learn-session scheduler.

Usage:
    python -m leitner_cli simulate               Run a simulated learn session
    python -m leitner_cli schedule --preset cram Show a review schedule
"""

import argparse
import logging
import random
from datetime import time, timedelta

from leitner.config import settings, utcnow
from leitner.learn.history import LearnHistory
from leitner.learn.session import LearnSession
from leitner.learn.settings import (
    SCHEDULE_LEVELS,
    CategoryOrder,
    LearnSettings,
    SchedulePreset,
    SidesMode,
)
from leitner.models import Card, Category


class FlipTracker:
    """Remembers which side the session chose for the current card."""

    def __init__(self) -> None:
        self.flipped = False
        self.cards_shown = 0

    def next_card_fetched(self, card: Card, flipped: bool) -> None:
        self.flipped = flipped
        self.cards_shown += 1


def build_demo_tree(
    rng: random.Random,
    n_cards: int,
    n_categories: int,
    max_level: int,
) -> Category:
    """Create a category tree of synthetic cards spread over several decks.

    Cards above deck 0 are made expired so that they are due for review.
    """
    root = Category(name="Demo")
    categories = [root.add_child(f"Chapter {i + 1}") for i in range(max(1, n_categories))]
    now = utcnow()

    for i in range(n_cards):
        category = rng.choice(categories)
        card = Card(front=f"question {i + 1}", back=f"answer {i + 1}")
        card.level = rng.randint(0, max_level)
        if card.level > 0:
            card.date_expired = now - timedelta(hours=rng.randint(1, 72))
        category.add_card(card)

    return root


def parse_time(value: str) -> time:
    """Parse an HH:MM time of day."""
    try:
        return time.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected HH:MM, got {value!r}") from e


def format_minutes(minutes: int) -> str:
    if minutes % (60 * 24) == 0:
        return f"{minutes // (60 * 24)}d"
    if minutes % 60 == 0:
        return f"{minutes // 60}h"
    return f"{minutes}m"


def cmd_simulate(args: argparse.Namespace) -> None:
    """Run a learn session against a simulated learner."""
    rng = random.Random(args.seed)
    root = build_demo_tree(rng, args.cards, args.categories, args.max_level)

    base = LearnSettings.from_config(settings)
    overrides = {
        "sides_mode": SidesMode(args.sides),
        "retest_failed_cards": args.retest,
        "shuffle_ratio": args.shuffle_ratio,
        "group_by_category": args.group_by_category,
        "category_order": CategoryOrder.RANDOM if args.random_category_order else CategoryOrder.FIXED,
        "amount_to_test_front": args.amount_front,
        "amount_to_test_back": args.amount_back,
    }
    if args.card_limit is not None:
        overrides["card_limit"] = args.card_limit
    learn_settings = LearnSettings(**{**base.model_dump(), **overrides})

    history = LearnHistory()
    session = LearnSession(
        root,
        learn_settings,
        learn_unlearned=True,
        learn_expired=True,
        provider=history,
        rng=rng,
    )
    tracker = FlipTracker()
    session.add_observer(tracker)

    print("\n  Simulated Learn Session")
    print(f"  {args.cards} cards in {args.categories} categories, pass rate {args.pass_rate:.0%}\n")

    session.start()
    steps = 0
    while session.is_running:
        card = session.current_card
        shown_level = card.level
        flipped = tracker.flipped
        steps += 1
        if steps >= args.max_steps:
            session.quit()

        roll = rng.random()
        if roll < args.skip_rate:
            outcome = "skip"
            session.card_skipped()
        elif roll < args.skip_rate + args.pass_rate:
            outcome = "pass"
            session.card_checked(True, flipped)
        else:
            outcome = "fail"
            session.card_checked(False, flipped)

        if args.show_cards:
            side = "back" if flipped else "front"
            print(f"  [{steps}] {card.front} ({side}, level {shown_level}): {outcome}")

    summary = history.last_summary
    print("\n  Session Complete!")
    if summary is None:
        print("  Nothing was learned or failed.\n")
        return
    print(f"  {'Cards shown:':<16} {tracker.cards_shown}")
    print(f"  {'Passed:':<16} {summary.passed}")
    print(f"  {'Relearned:':<16} {summary.relearned}")
    print(f"  {'Failed:':<16} {summary.failed}")
    print(f"  {'Skipped:':<16} {summary.skipped}")
    print(f"  {'Left active:':<16} {len(session.cards_left)}")
    print()


def cmd_schedule(args: argparse.Namespace) -> None:
    """Print a schedule preset and the due dates it produces."""
    learn_settings = LearnSettings(
        schedule_preset=SchedulePreset(args.preset),
        fixed_expiration_time=args.fixed_time,
    )
    now = utcnow().replace(second=0, microsecond=0)

    print(f"\n  Schedule: {learn_settings.schedule_preset.value}")
    print(f"  {'Level':<8}{'Delay':<10}Due if learned now ({now:%Y-%m-%d %H:%M})")
    for level in range(SCHEDULE_LEVELS):
        delay = format_minutes(learn_settings.schedule[level])
        due = learn_settings.expiration_date(now, level)
        print(f"  {level:<8}{delay:<10}{due:%Y-%m-%d %H:%M}")
    print()


def main() -> None:
    """Entry point for the Leitner learn CLI."""
    parser = argparse.ArgumentParser(
        prog="leitner_cli",
        description="Leitner learn-session scheduler tools",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # simulate
    sim_parser = subparsers.add_parser("simulate", help="Run a simulated learn session")
    sim_parser.add_argument("--cards", type=int, default=40, help="Number of cards")
    sim_parser.add_argument("--categories", type=int, default=3, help="Number of categories")
    sim_parser.add_argument("--max-level", type=int, default=4, help="Highest starting deck")
    sim_parser.add_argument("--pass-rate", type=float, default=0.7, help="Chance of passing")
    sim_parser.add_argument("--skip-rate", type=float, default=0.05, help="Chance of skipping")
    sim_parser.add_argument("--card-limit", type=int, default=None, help="Cards per session")
    sim_parser.add_argument(
        "--sides", choices=[mode.value for mode in SidesMode], default=settings.sides_mode
    )
    sim_parser.add_argument("--amount-front", type=int, default=1, help="Passes needed (front)")
    sim_parser.add_argument("--amount-back", type=int, default=1, help="Passes needed (back)")
    sim_parser.add_argument("--retest", action="store_true", help="Retest failed cards")
    sim_parser.add_argument("--shuffle-ratio", type=float, default=0.0)
    sim_parser.add_argument("--group-by-category", action="store_true")
    sim_parser.add_argument("--random-category-order", action="store_true")
    sim_parser.add_argument("--max-steps", type=int, default=1000, help="Stop after this many answers")
    sim_parser.add_argument("--seed", type=int, default=None, help="Random seed")
    sim_parser.add_argument("--show-cards", action="store_true", help="Print every answer")

    # schedule
    schedule_parser = subparsers.add_parser("schedule", help="Show a review schedule")
    schedule_parser.add_argument(
        "--preset",
        choices=[p.value for p in SchedulePreset if p is not SchedulePreset.CUSTOM],
        default=settings.schedule_preset,
    )
    schedule_parser.add_argument(
        "--fixed-time", type=parse_time, default=None, help="Fixed expiration time (HH:MM)"
    )

    args = parser.parse_args()

    if args.verbose or settings.debug:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "simulate": cmd_simulate,
        "schedule": cmd_schedule,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
