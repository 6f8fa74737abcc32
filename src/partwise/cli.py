import argparse
import asyncio
import logging
import os
import sys

import httpx

from partwise.transfer.coordinator import CoordinatorClient, UploadSessionHandle
from partwise.transfer.errors import UploadError
from partwise.transfer.orchestrator import MultipartUploader
from partwise.transfer.progress import ProgressSnapshot
from partwise.transfer.retry import RetryPolicy
from partwise.transfer.uploader import DEFAULT_CONCURRENCY

DEFAULT_COORDINATOR_URL = "http://localhost:8000"


def progress_bar(snapshot: ProgressSnapshot) -> None:
    bar_length = 20
    filled_length = bar_length * snapshot.percent // 100
    bar = "#" * filled_length + "-" * (bar_length - filled_length)
    sys.stdout.write(
        f"\rUploading: |{bar}| {snapshot.percent}% "
        f"({snapshot.parts_done}/{snapshot.parts_total} parts)"
    )
    if snapshot.parts_done == snapshot.parts_total:
        sys.stdout.write("\n")
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="partwise", description="Multipart uploads through a coordinator"
    )
    parser.add_argument(
        "--coordinator",
        default=os.getenv("PARTWISE_COORDINATOR_URL", DEFAULT_COORDINATOR_URL),
        help="Base URL of the upload coordinator",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", help="Upload a file")
    upload.add_argument("path")
    upload.add_argument("--content-type")
    upload.add_argument(
        "--part-size", type=int, help="Part size in bytes, at least 5 MiB"
    )
    upload.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY)
    upload.add_argument("--max-attempts", type=int, default=3)

    commands.add_parser("list", help="List open upload sessions")

    abort = commands.add_parser("abort", help="Abort an upload session")
    abort.add_argument("session_id")
    abort.add_argument("object_key")
    return parser


async def _run(args: argparse.Namespace) -> int:
    async with httpx.AsyncClient(timeout=httpx.Timeout(60.0)) as http:
        coordinator = CoordinatorClient(http, args.coordinator)

        if args.command == "list":
            for session in await coordinator.list_sessions():
                print(
                    f"{session['session_id']}\t{session['object_key']}\t"
                    f"{session.get('state') or 'untracked'}\t"
                    f"{session.get('initiated_at') or '-'}"
                )
            return 0

        if args.command == "abort":
            result = await coordinator.abort_session(
                UploadSessionHandle(
                    session_id=args.session_id,
                    object_key=args.object_key,
                    content_type="",
                )
            )
            print(f"{result.session_id}: {result.state} (released={result.released})")
            return 0

        uploader = MultipartUploader(
            coordinator,
            http,
            part_size=args.part_size,
            concurrency=args.concurrency,
            retry_policy=RetryPolicy(max_attempts=args.max_attempts),
        )
        result = await uploader.upload_file(
            args.path, args.content_type, progress_callback=progress_bar
        )
        print(f"Stored {result.size} bytes as {result.object_key}")
        if result.location:
            print(result.location)
        return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except (UploadError, OSError, ValueError) as exc:
        print(f"partwise: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
