import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional, Sequence

from catalog_export.commerce_auth import BearerTokenAuth, CommerceCredentials, OAuth1Signer
from catalog_export.exceptions import CatalogExportError
from catalog_export.services.performance import PerformanceTracker
from catalog_export.services.pipeline import CatalogEnrichmentPipeline
from catalog_export.settings import settings

# 로그 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("catalog_export.cli")


def _emit(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def _run_enrich(args) -> int:
    pipeline = CatalogEnrichmentPipeline.from_settings(settings)
    try:
        result = await pipeline.enrich_products(page_size=args.page_size, max_pages=args.max_pages)
    finally:
        await pipeline.aclose()

    if args.summary:
        _emit({
            "products": len(result.products),
            "fetch": result.fetch.model_dump(exclude={"products"}),
            "merge_statistics": result.merge_statistics.model_dump(),
            "performance": result.performance.model_dump(),
        })
    else:
        _emit(result.model_dump(mode="json"))
    return 0


async def _run_category(args) -> int:
    pipeline = CatalogEnrichmentPipeline.from_settings(settings)
    try:
        resolver = pipeline.category_resolver(PerformanceTracker())
        if args.category_id is not None:
            category = await resolver.by_id(args.category_id)
            if category is None:
                logger.error(f"[CLI] Category not found: {args.category_id}")
                return 1
            _emit(category.model_dump())
        elif args.tree:
            node = await resolver.tree(args.root)
            _emit(node.model_dump())
        else:
            page = await resolver.list(page_size=args.page_size, page=args.page)
            _emit(page.model_dump(mode="json"))
    finally:
        await pipeline.aclose()
    return 0


async def _run_inventory(args) -> int:
    pipeline = CatalogEnrichmentPipeline.from_settings(settings)
    try:
        resolver = pipeline.inventory_resolver(PerformanceTracker())
        if args.sku:
            lookups = await resolver.batch(args.sku)
            _emit({
                "items": {sku: lookup.model_dump(mode="json") for sku, lookup in lookups.items()},
                "statistics": resolver.statistics(lookups.values()).model_dump(),
            })
        else:
            page = await resolver.list(page_size=args.page_size, page=args.page)
            _emit(page.model_dump(mode="json"))
    finally:
        await pipeline.aclose()
    return 0


def run_check_command(args) -> None:
    """인증 정보 설정 여부만 확인 (요청 없음)"""
    credentials = CommerceCredentials.from_settings(settings)
    OAuth1Signer(credentials.oauth).require()
    BearerTokenAuth(credentials.admin_token).require()
    logger.info(f"[CLI] Credentials OK for {settings.commerce_base_url}")


COMMANDS = {
    "enrich": _run_enrich,
    "category": _run_category,
    "inventory": _run_inventory,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Catalog Export Operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    enrich_parser = subparsers.add_parser("enrich", help="Fetch products and merge categories/inventory")
    enrich_parser.add_argument("--page-size", type=int, default=None)
    enrich_parser.add_argument("--max-pages", type=int, default=None)
    enrich_parser.add_argument("--summary", action="store_true", help="Print statistics only")

    category_parser = subparsers.add_parser("category", help="Resolve categories")
    category_parser.add_argument("--id", dest="category_id", type=int, default=None)
    category_parser.add_argument("--tree", action="store_true")
    category_parser.add_argument("--root", type=int, default=None, help="Root category id for --tree")
    category_parser.add_argument("--page-size", type=int, default=20)
    category_parser.add_argument("--page", type=int, default=1)

    inventory_parser = subparsers.add_parser("inventory", help="Resolve inventory")
    inventory_parser.add_argument("--sku", action="append", help="SKU (repeatable)")
    inventory_parser.add_argument("--page-size", type=int, default=50)
    inventory_parser.add_argument("--page", type=int, default=1)

    subparsers.add_parser("check", help="Validate configured credentials")
    return parser


def main(argv: Optional[Sequence[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    try:
        if args.command == "check":
            run_check_command(args)
            return
        logger.info(f"[CLI] Starting {args.command}")
        exit_code = asyncio.run(COMMANDS[args.command](args))
    except CatalogExportError as e:
        logger.log(e.severity.log_level, f"[CLI] {e.error_code}: {e.message}")
        print(json.dumps(e.to_dict(), ensure_ascii=False, default=str), file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
