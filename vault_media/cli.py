#!/usr/bin/env python3
"""
Command line entry point for Vault Media

  vault-media --vault ~/Notes process "Daily/2024-01-01.md"
  vault-media --vault ~/Notes process-all --exclude Templates
  vault-media --vault ~/Notes orphans --output orphans.txt
  vault-media --vault ~/Notes serve
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import get_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-media",
        description="Move vault images into a content-addressed store and rewrite their links"
    )
    parser.add_argument('--vault', type=Path, help='Vault directory (default: VAULT_MEDIA_VAULT_PATH or .)')
    parser.add_argument('--media-root', help='Store root inside the vault (default: media)')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    process = subparsers.add_parser('process', help='Process the images of one document')
    process.add_argument('document', help='Vault-relative document path')

    process_all = subparsers.add_parser('process-all', help='Process the images of all documents')
    process_all.add_argument('--include', help='Case-insensitive regex a document path must match')
    process_all.add_argument('--exclude', action='append', help='Folder prefix to skip (repeatable)')

    orphans = subparsers.add_parser('orphans', help='List images no document links to')
    orphans.add_argument('--store-only', action='store_true', help='Only report files inside the media store')
    orphans.add_argument('--output', type=Path, help='Write the report to a file instead of stdout')

    subparsers.add_parser('serve', help='Run the HTTP API')
    return parser


async def run_command(args, settings) -> int:
    from .commands import VaultMediaService

    async with VaultMediaService(settings) as service:
        if args.command == 'process':
            result = await service.process_active_document(args.document, silent=True)
            print(f"{'✅ changed' if result.changed else '➖ unchanged'}: {result.path}")
            return 0

        if args.command == 'process-all':
            report = await service.process_all_documents(args.include, args.exclude)
            print(f"📊 {report.total} pages were processed: "
                  f"{report.changed} changed, {report.unchanged} unchanged, {report.failed} failed")
            for path in report.failed_paths:
                print(f"   ❌ {path}")
            return 1 if report.failed else 0

        if args.command == 'orphans':
            report = await service.list_orphan_images(store_only=args.store_only)
            if args.output:
                args.output.write_text(report.report + "\n", encoding="utf-8")
                print(f"{report.count} orphaned images written to {args.output}")
            else:
                print(report.report)
            return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.vault:
        overrides['vault_path'] = args.vault
    if args.media_root:
        overrides['media_root_directory'] = args.media_root
    if args.log_level:
        overrides['log_level'] = args.log_level
    settings = get_settings(**overrides)

    logging.basicConfig(
        level=settings.log_level_value,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.command == 'serve':
        from .main import run_server
        run_server(settings)
        return 0

    try:
        return asyncio.run(run_command(args, settings))
    except FileNotFoundError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
