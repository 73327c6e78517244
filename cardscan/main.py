import argparse
import asyncio
import logging
import sys
from typing import Optional

from cardscan.core.config import load_config
from cardscan.core.logging_setup import setup_logging
from cardscan.services.api_client import ApiClient
from cardscan.services.auth import AuthManager
from cardscan.services.scan_logger import ScanLogger
from cardscan.services.scanner import VISION_AVAILABLE
from cardscan.services.scanner.controller import PipelineController
from cardscan.services.scanner.models import ScanCandidate, Resolved
from cardscan.services.scanner.recognition import RecognitionFallbackCoordinator
from cardscan.services.scanner.resolver import ScanResolver
from cardscan.services.scanner.session import ScanSession

logger = logging.getLogger(__name__)

HELP = "[enter] capture  <name> type a card name  torch  done  quit"


def build_client(config: dict) -> ApiClient:
    auth = AuthManager(config["api_base_url"], auth_file=config["auth_file"], timeout=config["request_timeout"])
    return ApiClient(config["api_base_url"], auth=auth, timeout=config["request_timeout"])


def build_pipeline(config: dict, client: ApiClient, batch: bool) -> PipelineController:
    # Vision stack is imported here so that lookup/inventory work without it
    from cardscan.services.scanner.camera import Cv2Camera
    from cardscan.services.scanner.vision import EasyOcrRecognizer, PyzbarDecoder

    camera = Cv2Camera(index=config["camera_index"], rotation=config["camera_rotation"])
    camera.bind()
    recognizer = RecognitionFallbackCoordinator(
        PyzbarDecoder(enabled=config["barcode_enabled"]),
        EasyOcrRecognizer(languages=config["ocr_languages"], gpu=config["ocr_gpu"]),
    )
    scan_logger = ScanLogger(config["scan_log_dir"]) if config["scan_log_enabled"] else None
    return PipelineController(
        camera,
        recognizer,
        ScanResolver(client),
        session=ScanSession(client) if batch else None,
        batch=batch,
        scan_logger=scan_logger,
    )


async def run_scan(config: dict, batch: bool) -> int:
    if not VISION_AVAILABLE:
        logger.error("Scanner dependencies missing. Cannot start camera scanning.")
        return 1

    async with build_client(config) as client:
        pipeline = build_pipeline(config, client, batch)
        print(f"Scanning in {pipeline.mode} mode. {HELP}")
        try:
            while not pipeline.finished:
                try:
                    line = await asyncio.to_thread(input, f"[{pipeline.scanned_count} scanned] > ")
                except EOFError:
                    line = "quit"
                command = line.strip()

                if command == "quit":
                    if pipeline.scanned_count:
                        print(f"Discarding {pipeline.scanned_count} unsubmitted cards")
                    break
                if command == "torch":
                    print(f"Torch {'on' if pipeline.toggle_torch() else 'off'}")
                    continue
                if command == "done":
                    result = await pipeline.finish()
                    if result is not None and not result.ok:
                        print(f"Bulk scan failed ({result.error}); cards kept, try 'done' again")
                    elif result is not None:
                        print(f"Scanned {result.successful}/{result.total_submitted} cards")
                    continue

                report = await pipeline.capture(manual_text=command)
                print(report.message)
        finally:
            pipeline.close()
    return 0


def lookup_candidate(args: argparse.Namespace) -> ScanCandidate:
    if args.set_code:
        return ScanCandidate.from_set(args.set_code, args.collector_number)
    return ScanCandidate.from_manual(args.name)


async def run_lookup(config: dict, candidate: ScanCandidate) -> int:
    async with build_client(config) as client:
        outcome = await ScanResolver(client).resolve(candidate)
    if isinstance(outcome, Resolved):
        card = outcome.card
        print(f"{card.name} [{card.set_code} #{card.collector_number}] {card.type_line or ''}".rstrip())
        return 0
    print(f"Not resolved: {outcome.reason}")
    return 1


async def run_inventory(config: dict) -> int:
    async with build_client(config) as client:
        inventory = await client.get_inventory()
    if inventory is None:
        print("Failed to load inventory")
        return 1
    for item in inventory.inventory:
        name = item.card.name if item.card else item.card_id
        set_code = item.card.set_code if item.card else "?"
        print(f"{item.quantity:>3} x {name} ({set_code})")
    print(f"{inventory.count} entries")
    return 0


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cardscan", description="Scan trading cards into your inventory.")
    parser.add_argument("--config", default=None, help="Path to the JSON config file")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan cards with the camera")
    scan.add_argument("--batch", action="store_true", help="Collect several cards and submit them together")

    lookup = sub.add_parser("lookup", help="Resolve a card by name or by set and collector number")
    lookup.add_argument("name", nargs="?", default="")
    lookup.add_argument("--set", dest="set_code", default="", help="Set code, e.g. lea")
    lookup.add_argument("--number", dest="collector_number", default="", help="Collector number within the set")

    sub.add_parser("inventory", help="List the inventory")
    args = parser.parse_args(argv)

    if args.command == "lookup":
        by_set = bool(args.set_code.strip() or args.collector_number.strip())
        if by_set and args.name.strip():
            parser.error("lookup takes either NAME or --set/--number, not both")
        if by_set and not (args.set_code.strip() and args.collector_number.strip()):
            parser.error("--set and --number must be given together")
        if not by_set and not args.name.strip():
            parser.error("lookup needs NAME or --set/--number")
    return args


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(config["log_dir"], config["log_level"])

    if args.command == "scan":
        return asyncio.run(run_scan(config, args.batch))
    if args.command == "lookup":
        return asyncio.run(run_lookup(config, lookup_candidate(args)))
    return asyncio.run(run_inventory(config))


if __name__ == "__main__":
    sys.exit(main())
