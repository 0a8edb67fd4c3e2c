"""
Command-line interface for the assessment marker.

Usage:
    python -m app mark FILE --student NAME --assignment TITLE [--memo MEMO_FILE]
    python -m app plan [--directory DIR] [--pattern GLOB]
    python -m app batch-mark [--directory DIR] [--mode local|remote] [--prompt-file FILE]
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from pydantic import ValidationError

from app.config import get_settings
from app.middleware.logging import configure_logging
from app.models.document import Document
from app.services.batch_advisor import estimate_processing_time, recommend_batch, validate_batch
from app.services.batch_processor import BatchMarker, load_text_documents, summarize_batch
from app.services.gemini_client import GeminiCompletionClient
from app.services.rubric_engine import RubricEngine
from app.utils.errors import MarkingError, describe_failure


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="assessment-marker",
        description="Assessment Marker CLI - Mark text submissions locally or with Gemini"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Mark command
    mark_parser = subparsers.add_parser(
        "mark",
        help="Mark one text file with the local rule-based engine"
    )
    mark_parser.add_argument("file", type=str, help="Text file containing the submission")
    mark_parser.add_argument("--student", "-s", type=str, required=True, help="Student name")
    mark_parser.add_argument("--assignment", "-a", type=str, required=True, help="Assignment title")
    mark_parser.add_argument("--memo", "-m", type=str, default=None, help="Optional memo text file")

    # Plan command
    plan_parser = subparsers.add_parser(
        "plan",
        help="Recommend a batch size for a directory of text files"
    )
    _add_directory_arguments(plan_parser)

    # Batch mark command
    batch_parser = subparsers.add_parser(
        "batch-mark",
        help="Mark every text file in a directory, one at a time"
    )
    _add_directory_arguments(batch_parser)
    batch_parser.add_argument(
        "--mode",
        choices=("local", "remote"),
        default="local",
        help="Marking mode (default: local)"
    )
    batch_parser.add_argument(
        "--prompt-file",
        type=str,
        default=None,
        help="Marking instructions (required for remote mode)"
    )
    batch_parser.add_argument(
        "--assessment-type",
        choices=("assessment", "project"),
        default="assessment",
        help="Remote assessment type (default: assessment)"
    )
    batch_parser.add_argument("--memo", "-m", type=str, default=None, help="Optional memo text file")

    return parser


def _add_directory_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--directory",
        "-d",
        type=str,
        default=".",
        help="Directory containing submissions (default: current directory)"
    )
    parser.add_argument(
        "--pattern",
        "-p",
        type=str,
        default="*.txt",
        help="Glob pattern for submission files (default: *.txt)"
    )


def _read_file(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_directory(args: argparse.Namespace) -> Optional[List[Document]]:
    if not os.path.isdir(args.directory):
        print(f"Error: Not a directory: {args.directory}")
        return None

    documents = load_text_documents(args.directory, args.pattern)
    if not documents:
        print(f"No files found matching pattern: {args.pattern}")
        return None
    return documents


def mark_command(args: argparse.Namespace) -> int:
    """
    Mark one file locally and print the report.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    if not os.path.isfile(args.file):
        print(f"Error: File not found: {args.file}")
        return 1

    document = Document(
        text=_read_file(args.file),
        student_name=args.student,
        assignment_title=args.assignment,
        file_name=os.path.basename(args.file),
    )
    try:
        result = RubricEngine().mark_locally(document, _read_file(args.memo))
    except MarkingError as e:
        print(describe_failure(e))
        return 1

    print(result.report)
    return 0


def plan_command(args: argparse.Namespace) -> int:
    """
    Print the batch plan for a directory.

    Returns:
        int: 0 when the batch is processable, otherwise 1
    """
    documents = _load_directory(args)
    if documents is None:
        return 1

    texts = [doc.text for doc in documents]
    plan = recommend_batch(texts)
    validation = validate_batch(texts)

    print(f"Files: {len(texts)}")
    print(f"Recommended batch size: {plan.recommended_batch_size}")
    print(f"Total batches: {plan.total_batches}")
    print(f"Risk level: {plan.risk_level}")
    print(f"Reason: {plan.reason}")
    print(f"Estimated time per batch: {plan.estimated_time_per_batch}")
    print(f"Estimated total time: {estimate_processing_time(texts)}")

    for issue in validation.issues:
        print(f"  ! {issue}")
    for recommendation in validation.recommendations:
        print(f"  - {recommendation}")

    return 0 if plan.is_processable else 1


async def batch_mark_command(args: argparse.Namespace) -> int:
    """
    Mark a directory sequentially and print the batch summary.

    Returns:
        int: Exit code (0 if at least one document was marked, 1 otherwise)
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Configuration error: {e}")
        return 1

    documents = _load_directory(args)
    if documents is None:
        return 1

    client = None
    if args.mode == "remote":
        if not settings.gemini_configured:
            print("Configuration error: GEMINI_API_KEY not set")
            print("\nMake sure you have a .env file with:")
            print("  GEMINI_API_KEY=your_api_key")
            return 1
        client = GeminiCompletionClient()

    def show_progress(progress) -> None:
        if progress.current_label and progress.status == "processing":
            print(f"[{progress.processed}/{progress.total}] {progress.current_label}")

    marker = BatchMarker(
        RubricEngine(client=client, settings=settings),
        mode=args.mode,
        prompt=_read_file(args.prompt_file),
        assessment_type=args.assessment_type,
        memo=_read_file(args.memo),
        on_progress=show_progress,
        settings=settings,
    )

    try:
        job = await marker.process(documents)
    except MarkingError as e:
        print(describe_failure(e))
        return 1
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 1

    print()
    print(summarize_batch(job))

    succeeded = sum(1 for outcome in job.outcomes if outcome.status == "ok")
    return 0 if succeeded > 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging("WARNING")

    # Route to command handler
    if args.command == "mark":
        return mark_command(args)
    if args.command == "plan":
        return plan_command(args)
    if args.command == "batch-mark":
        return asyncio.run(batch_mark_command(args))

    print(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
