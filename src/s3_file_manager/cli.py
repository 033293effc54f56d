import argparse
import asyncio
import glob
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from botocore.exceptions import InvalidRegionError
from botocore.utils import validate_region_name

from . import config as cfg
from .errors import InvalidPath, S3FileManagerError, UsageError
from .storage import ClientConfig, S3Storage, UploadTask, object_url

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class UploadCommand:
    pattern: str


@dataclass(frozen=True)
class ListCommand:
    max_items: int = cfg.DEFAULT_MAX_ITEMS
    continuation_token: Optional[str] = None
    all_pages: bool = False


Command = Union[UploadCommand, ListCommand]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="s3-file-manager",
        description="Upload local files matching a glob pattern to an S3 bucket, or list the objects in a bucket.",
    )
    p.add_argument("--bucket", "-b", default=None, help="Target S3 bucket name (or env S3_BUCKET_NAME)")
    p.add_argument("--region", "-r", default=None, help="AWS region of the bucket (or env AWS_REGION)")
    p.add_argument(
        "--file-pattern",
        "-f",
        default=None,
        help="Glob pattern of local files to upload, e.g. 'images/**/*.png'",
    )
    p.add_argument(
        "--list-images",
        "-l",
        action="store_true",
        help="List objects in the bucket instead of uploading",
    )
    p.add_argument(
        "--max-items",
        "-m",
        type=int,
        default=cfg.DEFAULT_MAX_ITEMS,
        help=f"Page size for listing (default {cfg.DEFAULT_MAX_ITEMS})",
    )
    p.add_argument(
        "--continuation-token",
        "-c",
        default=None,
        help="Resume listing from the token printed by a previous invocation",
    )
    p.add_argument(
        "--all-pages",
        action="store_true",
        help="Keep listing until the bucket is exhausted instead of stopping after one page",
    )
    p.add_argument(
        "--public-read",
        action="store_true",
        help="Upload objects with the public-read canned ACL (bucket must allow ACLs)",
    )
    p.add_argument(
        "--endpoint-url",
        default=None,
        help="Custom S3-compatible endpoint URL (e.g., http://localhost:9000)",
    )
    p.add_argument(
        "--path-style",
        action="store_true",
        help="Use path-style addressing (required by some S3-compatible services)",
    )
    p.add_argument("--profile", default=None, help="AWS profile name to use for credentials (optional)")
    p.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help=f"Logging level (or env LOG_LEVEL, default {cfg.DEFAULT_LOG_LEVEL})",
    )
    return p


def resolve_bucket(args: argparse.Namespace) -> Optional[str]:
    # Priority: --bucket flag > env S3_BUCKET_NAME > config.DEFAULT_BUCKET
    return args.bucket or os.getenv("S3_BUCKET_NAME") or (cfg.DEFAULT_BUCKET or None)


def resolve_region(args: argparse.Namespace) -> Optional[str]:
    # Priority: --region flag > env AWS_REGION > config.DEFAULT_REGION
    return args.region or os.getenv("AWS_REGION") or cfg.DEFAULT_REGION


def resolve_endpoint(args: argparse.Namespace) -> Optional[str]:
    # Priority: --endpoint-url > env S3_ENDPOINT_URL > config.DEFAULT_ENDPOINT_URL
    return args.endpoint_url or os.getenv("S3_ENDPOINT_URL") or cfg.DEFAULT_ENDPOINT_URL


def resolve_log_level(args: argparse.Namespace) -> str:
    level = (args.log_level or os.getenv("LOG_LEVEL") or cfg.DEFAULT_LOG_LEVEL).upper()
    if level not in LOG_LEVELS:
        raise UsageError(f"invalid log level {level!r}, expected one of {', '.join(LOG_LEVELS)}")
    return level


def resolve_config(args: argparse.Namespace) -> ClientConfig:
    bucket = resolve_bucket(args)
    if not bucket:
        raise UsageError("bucket name not provided. Use --bucket or set env S3_BUCKET_NAME.")
    region = resolve_region(args)
    if not region:
        raise UsageError("region not provided. Use --region or set env AWS_REGION.")
    try:
        validate_region_name(region)
    except InvalidRegionError as e:
        raise UsageError(f"malformed region {region!r}") from e

    return ClientConfig(
        bucket=bucket,
        region=region,
        endpoint_url=resolve_endpoint(args),
        profile=args.profile,
        use_path_style=bool(args.path_style or cfg.DEFAULT_USE_PATH_STYLE),
        make_public=args.public_read,
    )


def build_command(args: argparse.Namespace) -> Command:
    has_pattern = args.file_pattern is not None
    if has_pattern and args.list_images:
        raise UsageError("--file-pattern and --list-images are mutually exclusive")
    if not has_pattern and not args.list_images:
        raise UsageError("either --file-pattern or --list-images must be provided")

    if has_pattern:
        if not args.file_pattern:
            raise UsageError("--file-pattern must not be empty")
        return UploadCommand(pattern=args.file_pattern)

    if args.max_items < 1:
        raise UsageError("--max-items must be a positive integer")
    if args.all_pages and args.continuation_token:
        raise UsageError("--all-pages always starts from the beginning; drop --continuation-token")
    return ListCommand(
        max_items=args.max_items,
        continuation_token=args.continuation_token,
        all_pages=args.all_pages,
    )


def expand_pattern(pattern: str) -> Iterator[Path]:
    """Lazily yield regular files matching `pattern`.

    Candidates that cannot be uploaded (directories, dangling links, entries
    that vanish while matching) are logged and skipped.
    """
    for match in glob.iglob(pattern, recursive=True):
        path = Path(match)
        try:
            if path.is_file():
                yield path
                continue
            reason = "not a regular file"
        except OSError as e:
            reason = str(e)
        logger.warning("Skipping %s: %s", match, reason)


def make_upload_task(path: Path) -> UploadTask:
    # Keys are base names only; two matches with the same name overwrite each other.
    key = path.name
    if not key:
        raise InvalidPath(f"cannot derive a file name from {str(path)!r}")
    try:
        str(path).encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidPath(f"path is not valid UTF-8: {str(path)!r}") from e
    return UploadTask(local_path=path, key=key)


async def upload_files(storage: S3Storage, bucket: str, pattern: str) -> int:
    uploaded = 0
    for path in expand_pattern(pattern):
        task = make_upload_task(path)
        # One outstanding upload at a time; the thread only keeps the loop free.
        await asyncio.to_thread(storage.put_object, bucket, task.key, task.local_path)
        print(f"File uploaded successfully to {bucket}/{task.key}", flush=True)
        uploaded += 1
    logger.info("Uploaded %d file(s) matching %s", uploaded, pattern)
    return uploaded


async def list_images(storage: S3Storage, bucket: str, region: str, command: ListCommand) -> None:
    if command.all_pages:
        # Print each page as it arrives so a failure later on keeps earlier output.
        pages = storage.iter_pages(bucket, command.max_items)
        while True:
            page = await asyncio.to_thread(next, pages, None)
            if page is None:
                return
            print_urls(bucket, region, page.objects)

    page = await asyncio.to_thread(
        storage.list_objects, bucket, command.max_items, command.continuation_token
    )
    print_urls(bucket, region, page.objects)
    if page.continuation_token:
        print(f"Next Continuation Token: {page.continuation_token}", flush=True)


def print_urls(bucket: str, region: str, keys: List[str]) -> None:
    for key in keys:
        print(f"Found object with URL: {object_url(bucket, region, key)}")
    sys.stdout.flush()


async def run(command: Command, config: ClientConfig, storage: S3Storage) -> None:
    if isinstance(command, UploadCommand):
        await upload_files(storage, config.bucket, command.pattern)
    else:
        await list_images(storage, config.bucket, config.region, command)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(resolve_log_level(args))
        command = build_command(args)
        config = resolve_config(args)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if config.endpoint_url:
        logger.info("Using endpoint %s%s", config.endpoint_url, " (path-style)" if config.use_path_style else "")

    try:
        storage = S3Storage.from_config(config)
        asyncio.run(run(command, config, storage))
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except S3FileManagerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
