"""Command-line entry point for story-tasks."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Sequence

from pydantic import BaseModel, ValidationError
from web3.exceptions import Web3RPCError

from story_tasks import __version__
from story_tasks.core.config import CHAIN_IDS, Settings, chain_profile, get_settings
from story_tasks.core.exceptions import StoryTasksError
from story_tasks.core.logging import configure_logging
from story_tasks.services.registration import get_story_protocol_service
from story_tasks.services.storage_key import namespaced_storage_key

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2


def _print_json(payload: Any) -> None:
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    print(json.dumps(payload, indent=2, sort_keys=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="story-tasks",
        description="Operator tasks for deployed Story Protocol contracts",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--network",
        choices=sorted(CHAIN_IDS),
        help="Network profile (defaults to NETWORK from the environment)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("accounts", help="Print the configured signer address")
    p.set_defaults(handler=cmd_accounts)

    p = sub.add_parser("create-iporg", help="Create an IP Org and its initial definition")
    p.add_argument("name", help="IP Org name")
    p.add_argument("symbol", help="IP Org symbol")
    p.add_argument("--events", action="store_true", help="Show events in the tx receipt")
    p.set_defaults(handler=cmd_create_ip_org)

    p = sub.add_parser("create-ip-asset", help="Register an IP asset in an IP Org")
    p.add_argument("ip_org", help="IP Org address")
    p.add_argument(
        "ip_asset_type", help="STORY, CHARACTER, ART, GROUP, LOCATION or ITEM"
    )
    p.add_argument("name", help="IP asset name")
    p.add_argument("description", help="IP asset description")
    p.add_argument("media_url", help="IP asset media URL")
    p.add_argument("--events", action="store_true", help="Show events in the tx receipt")
    p.set_defaults(handler=cmd_create_ip_asset)

    p = sub.add_parser("uploader", help="Mass register IP assets from a JSON file")
    p.add_argument("ip_org", help="IP Org address")
    p.add_argument("receiver", help="Address that will own the IP assets")
    p.add_argument("file_path", help="Path to the JSON data")
    p.add_argument(
        "batch_size", nargs="?", type=int, default=None, help="Records per batch"
    )
    p.add_argument(
        "--concurrency", type=int, default=None, help="Concurrent submissions per batch"
    )
    p.set_defaults(handler=cmd_upload)

    p = sub.add_parser(
        "reconcile", help="Re-check timed-out uploads by transaction hash"
    )
    p.add_argument("file_path", help="Path to the JSON data used for the upload")
    p.set_defaults(handler=cmd_reconcile)

    p = sub.add_parser("eip7201-key", help="Get the EIP-7201 namespaced storage key")
    p.add_argument("namespace", help="Namespace, for example erc7201:example.main")
    p.set_defaults(handler=cmd_eip7201_key)

    return parser


async def cmd_accounts(args: argparse.Namespace, settings: Settings) -> int:
    _print_json({"network": settings.network, "address": chain_profile(settings).signer_address})
    return EXIT_OK


async def cmd_create_ip_org(args: argparse.Namespace, settings: Settings) -> int:
    service = await get_story_protocol_service(settings)
    result = await service.create_ip_org(args.name, args.symbol, events=args.events)
    _print_json(result)
    return EXIT_OK


async def cmd_create_ip_asset(args: argparse.Namespace, settings: Settings) -> int:
    service = await get_story_protocol_service(settings)
    result = await service.create_ip_asset(
        args.ip_org,
        args.ip_asset_type,
        args.name,
        args.description,
        args.media_url,
        events=args.events,
    )
    _print_json(result)
    return EXIT_OK


async def cmd_upload(args: argparse.Namespace, settings: Settings) -> int:
    service = await get_story_protocol_service(settings)
    result = await service.upload_ip_assets(
        args.ip_org,
        args.receiver,
        args.file_path,
        batch_size=args.batch_size,
        concurrency=args.concurrency,
    )
    _print_json({"report": result.report.model_dump(), "results_path": result.results_path})
    return EXIT_PARTIAL if result.report.has_failures else EXIT_OK


async def cmd_reconcile(args: argparse.Namespace, settings: Settings) -> int:
    service = await get_story_protocol_service(settings)
    result = await service.reconcile_ip_assets(args.file_path)
    _print_json({"report": result.report.model_dump(), "results_path": result.results_path})
    return EXIT_PARTIAL if result.report.has_failures else EXIT_OK


async def cmd_eip7201_key(args: argparse.Namespace, settings: Settings) -> int:
    _print_json({"namespace": args.namespace, "key": namespaced_storage_key(args.namespace)})
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.network:
        settings = settings.model_copy(update={"network": args.network})
    configure_logging(settings)

    try:
        return asyncio.run(args.handler(args, settings))
    except (StoryTasksError, ValidationError, ValueError, Web3RPCError) as e:
        logger.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
