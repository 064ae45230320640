"""
Command-line host: configures logging and observability once, wires the
QuizService and runs a quiz or prints the dashboard.

    buzz-quiz dashboard --user ana
    buzz-quiz play --area matematica --user ana
"""

import argparse
import logging
from collections.abc import Callable
from typing import Any

from src.bootstrap import build_service
from src.quiz.adapters.identity import StaticIdentityProvider
from src.quiz.application.service import QuizService
from src.quiz.application.session_engine import QuizSessionEngine
from src.quiz.domain.errors import InvalidConfigError
from src.quiz.domain.fsm import SessionState
from src.shared.observability import configure_observability

_observability_configured = False


def create_app(
    user_id: str | None = None,
    backend: str | None = None,
    db_path: str | None = None,
    seed_dir: str | None = "data/areas",
) -> QuizService:
    """Composition root for hosts. Observability is set up on the first call only."""
    global _observability_configured
    if not _observability_configured:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
        )
        configure_observability()
        _observability_configured = True

    return build_service(
        backend=backend,
        identity=StaticIdentityProvider(user_id),
        db_path=db_path,
        seed_dir=seed_dir,
    )


def _session_config(args: argparse.Namespace) -> dict[str, Any]:
    config: dict[str, Any] = {"mode": args.mode, "is_premium": args.premium}
    if args.area:
        config["area"] = args.area
    if args.subject:
        config["subject"] = args.subject
    return config


def run_quiz(
    engine: QuizSessionEngine,
    ask: Callable[[str], str] = input,
    say: Callable[[str], None] = print,
) -> None:
    """Plays the session in the terminal. 'p' pauses, 'f' bookmarks, 'q' quits."""
    result = engine.start()
    if not result.accepted:
        say(engine.error_message or result.hint or "The quiz cannot be started.")
        return

    while engine.state in (SessionState.IN_PROGRESS, SessionState.PAUSED):
        if engine.state is SessionState.PAUSED:
            ask("Paused. Press Enter to resume. ")
            engine.resume()
            continue

        question = engine.current_question
        say(f"\n[{engine.cursor + 1}/{engine.total_questions}] {question.text}")
        for option in question.options:
            say(f"  {option.alias}) {option.text}")

        choice = ask("Answer: ").strip().lower()
        if choice == "q":
            engine.save_snapshot()
            engine.abandon()
            say("Progress saved. See you soon!")
            return
        if choice == "p":
            engine.pause()
            continue
        if choice == "f":
            engine.toggle_favorite()
            say(engine.last_hint or "")
            continue

        if not engine.select_answer(choice).accepted or not engine.submit_answer().accepted:
            say(engine.last_hint or "")
            continue

        if question.is_correct(choice):
            say("✅ Correct!")
        else:
            say(f"❌ Wrong. The answer was {question.correct_option}.")
        if engine.explanation:
            say(engine.explanation)
        engine.advance()

    if engine.result is not None:
        score = engine.result.score
        say(
            f"\n{engine.result_message()} {score.correct_answers}/{score.total_questions} "
            f"({score.percentage}%) in {engine.time_formatted}"
        )
        if engine.result.xp is not None:
            say(f"+{engine.result.xp.xp_gained} XP")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="buzz-quiz", description="Buzz Developer Quiz")
    p.add_argument("--user", default=None, help="User id (anonymous when omitted)")
    p.add_argument("--backend", default=None, help="memory, sqlite, streamlit or supabase")
    p.add_argument("--db", dest="db_path", default=None, help="SQLite database path")
    p.add_argument("--seed-dir", default="data/areas", help="Question bank directory")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("dashboard", help="Print the user's dashboard as JSON")

    play = sub.add_parser("play", help="Play a quiz in the terminal")
    play.add_argument(
        "--mode",
        default="area",
        choices=["area", "subject", "mixed", "smart", "favorites"],
    )
    play.add_argument("--area", default=None)
    play.add_argument("--subject", default=None)
    play.add_argument("--premium", action="store_true")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    service = create_app(
        user_id=args.user, backend=args.backend, db_path=args.db_path, seed_dir=args.seed_dir
    )

    if args.command == "dashboard":
        print(service.get_dashboard().model_dump_json(indent=2))
        return 0

    try:
        if args.mode == "favorites":
            engine = service.start_favorites_session(is_premium=args.premium)
        else:
            engine = service.start_session(_session_config(args))
    except InvalidConfigError as e:
        print(f"Invalid quiz selection: {e}")
        return 2

    if engine.state is SessionState.LOADING:
        engine.load_questions()
    if engine.state is SessionState.READY and engine.can_start:
        engine.restore_snapshot()

    run_quiz(engine)
    service.end_session()
    return 0 if engine.state is not SessionState.ERROR else 1


if __name__ == "__main__":
    raise SystemExit(main())
