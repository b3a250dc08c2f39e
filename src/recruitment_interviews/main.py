"""
Main entry point for the recruitment interview service.

Drives the interview orchestrator from the command line, for operators and
local runs.
"""

import argparse
import asyncio
import logging
import sys
from uuid import UUID

from recruitment_interviews.config import get_settings
from recruitment_interviews.db.session import create_engine, create_session_factory, init_models
from recruitment_interviews.orchestrator.interview_orchestrator import InterviewOrchestrator
from recruitment_interviews.schemas import InterviewSession, ServiceResult


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="recruitment-interviews",
        description="Run AI-generated interview sessions for job applications.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database tables")

    start = subparsers.add_parser("start", help="Start the interview of an application")
    start.add_argument("application_id", type=UUID, help="Application UUID")

    submit = subparsers.add_parser("submit", help="Answer a question")
    submit.add_argument("question_id", type=UUID, help="Question UUID")
    submit.add_argument("answer", help="Answer text")
    submit.add_argument("--media-ref", default=None, help="Reference to an uploaded recording")
    submit.add_argument(
        "--no-wait",
        action="store_true",
        help="Exit without waiting for the next question to be generated",
    )

    show = subparsers.add_parser("show", help="Show an interview and its questions")
    show.add_argument("interview_id", type=UUID, help="Interview UUID")

    return parser


def _print_result(result: ServiceResult[InterviewSession]) -> None:
    print(result.model_dump_json(indent=2))


async def run_command(argv: list[str] | None = None) -> int:
    """
    Run a single CLI command.

    Args:
        argv: Command line arguments without the program name.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logger = logging.getLogger(__name__)

    engine = create_engine(settings.database_url)
    try:
        if args.command == "init-db":
            await init_models(engine)
            return 0

        session_factory = create_session_factory(engine)
        orchestrator = InterviewOrchestrator.from_settings(session_factory, settings)
        try:
            if args.command == "start":
                result = await orchestrator.start_interview(args.application_id)
            elif args.command == "submit":
                result = await orchestrator.submit_and_generate_question(
                    args.question_id,
                    args.answer,
                    media_ref=args.media_ref,
                )
                if result.success and not args.no_wait:
                    logger.info("Waiting for the next question...")
                    await orchestrator.worker.drain()
            else:
                result = await orchestrator.get_interview(args.interview_id)
        finally:
            await orchestrator.close(cancel_pending=args.command == "submit" and args.no_wait)

        _print_result(result)
        return 0 if result.success else 1
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        sys.exit(asyncio.run(run_command(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
