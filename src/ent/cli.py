"""ent CLI - serve a blob store and talk to a running server.

Usage:
    python -m ent serve [--fs-root DIR] [--provider-dir DIR] [--http-addr HOST:PORT]
    python -m ent buckets [--server URL]
    python -m ent ls BUCKET [--limit N] [--prefix P] [--sort TOKEN] [--server URL]
    python -m ent put BUCKET KEY [--input PATH] [--server URL]
    python -m ent get BUCKET KEY [--out PATH] [--server URL]
    python -m ent rm BUCKET KEY [--server URL]

Exit codes:
    0: Success
    1: Request or storage failure (JSON error on stdout)
    2: Usage error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx

from ent.client import EntClient, ListOptions
from ent.config import EntConfig
from ent.storage.disk_fs import DiskFileSystem
from ent.storage.errors import EntError
from ent.storage.provider import DiskProvider
from ent.storage.service import BlobService

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "http://localhost:5555"


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _error_result(err: EntError) -> dict[str, Any]:
    return {"error": {"code": err.kind.value, "message": str(err)}}


def configure_logging(level: str) -> None:
    """Configure the root logger for command-line use."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_service(config: EntConfig) -> BlobService:
    """Build the disk-backed service described by config.

    Raises:
        ProviderError: If the policy directory cannot be read.
        InvalidPolicyError: If a policy document is malformed.
    """
    provider = DiskProvider(config.provider_dir)
    filesystem = DiskFileSystem(config.fs_root, hash_algorithm=config.hash_algorithm)
    return BlobService(provider, filesystem)


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP server until interrupted."""
    import uvicorn

    from ent.api.main import ENT_VERSION, create_app
    from ent.observability.tracing import configure_tracing

    config = EntConfig.from_env().with_overrides(
        fs_root=args.fs_root,
        provider_dir=args.provider_dir,
        http_addr=args.http_addr,
    )
    configure_logging(config.log_level)

    service = build_service(config)
    tracing = configure_tracing()
    app = create_app(service, tracing=tracing)

    logger.info("ent %s listening on %s:%d", ENT_VERSION, config.host, config.port)
    try:
        uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    finally:
        tracing.shutdown()
    return 0


def cmd_buckets(client: EntClient, args: argparse.Namespace) -> int:
    buckets = client.buckets()
    _output_json({"count": len(buckets), "buckets": [b.to_dict() for b in buckets]})
    return 0


def cmd_ls(client: EntClient, args: argparse.Namespace) -> int:
    options = ListOptions(limit=args.limit, prefix=args.prefix, sort=args.sort)
    files = client.list(args.bucket, options)
    _output_json(
        {
            "bucket": args.bucket,
            "count": len(files),
            "files": [f.model_dump(mode="json", by_alias=True) for f in files],
        }
    )
    return 0


def cmd_put(client: EntClient, args: argparse.Namespace) -> int:
    if args.input:
        with open(args.input, "rb") as source:
            stored = client.create(args.bucket, args.key, source)
    else:
        stored = client.create(args.bucket, args.key, sys.stdin.buffer)
    _output_json({"file": stored.model_dump(mode="json", by_alias=True)})
    return 0


def cmd_get(client: EntClient, args: argparse.Namespace) -> int:
    content = client.get(args.bucket, args.key)
    if args.out:
        Path(args.out).write_bytes(content)
    else:
        sys.stdout.buffer.write(content)
        sys.stdout.buffer.flush()
    return 0


def cmd_rm(client: EntClient, args: argparse.Namespace) -> int:
    removed = client.delete(args.bucket, args.key)
    _output_json({"file": removed.model_dump(mode="json", by_alias=True)})
    return 0


REMOTE_COMMANDS = {
    "buckets": cmd_buckets,
    "ls": cmd_ls,
    "put": cmd_put,
    "get": cmd_get,
    "rm": cmd_rm,
}


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid limit: {value!r}") from e
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"invalid limit: {value!r}")
    return parsed


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ent",
        description="Namespaced blob store",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--fs-root", metavar="DIR", help="File system root directory")
    serve_parser.add_argument(
        "--provider-dir", metavar="DIR", help="Provider directory with bucket policies"
    )
    serve_parser.add_argument("--http-addr", metavar="HOST:PORT", help="HTTP listen address")

    remote = argparse.ArgumentParser(add_help=False)
    remote.add_argument(
        "--server",
        metavar="URL",
        default=DEFAULT_SERVER,
        help=f"ent server base URL (default: {DEFAULT_SERVER})",
    )

    subparsers.add_parser("buckets", parents=[remote], help="List buckets")

    ls_parser = subparsers.add_parser("ls", parents=[remote], help="List files of a bucket")
    ls_parser.add_argument("bucket")
    ls_parser.add_argument("--limit", type=_non_negative_int, default=None)
    ls_parser.add_argument("--prefix", default="")
    ls_parser.add_argument("--sort", default="", help="+key, -key, +lastModified, -lastModified")

    put_parser = subparsers.add_parser("put", parents=[remote], help="Store a file")
    put_parser.add_argument("bucket")
    put_parser.add_argument("key")
    put_parser.add_argument("--input", metavar="PATH", help="Read content from PATH, not stdin")

    get_parser = subparsers.add_parser("get", parents=[remote], help="Fetch a file")
    get_parser.add_argument("bucket")
    get_parser.add_argument("key")
    get_parser.add_argument("--out", metavar="PATH", help="Write content to PATH, not stdout")

    rm_parser = subparsers.add_parser("rm", parents=[remote], help="Delete a file")
    rm_parser.add_argument("bucket")
    rm_parser.add_argument("key")

    return parser


def main(argv: list[str] | None = None, *, http_client: httpx.Client | None = None) -> int:
    """Main entry point.

    Args:
        argv: Arguments without the program name; defaults to sys.argv.
        http_client: Optional httpx.Client for remote commands (testing).

    Exit codes:
        0: Success
        1: Request or storage failure
        2: Usage error
    """
    parser = create_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    if args.command is None:
        parser.print_help()
        return 2

    try:
        if args.command == "serve":
            return cmd_serve(args)
        with EntClient(args.server, http_client=http_client) as client:
            return REMOTE_COMMANDS[args.command](client, args)
    except EntError as e:
        _output_json(_error_result(e))
        return 1
    except OSError as e:
        _output_json({"error": {"code": "IO_ERROR", "message": str(e)}})
        return 1


if __name__ == "__main__":
    sys.exit(main())
