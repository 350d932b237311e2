#!/usr/bin/env python3
"""CLI wrapper for the brand image flow.

Usage:
    python brand_cli.py shirt.jpg --brand nike
    python brand_cli.py front.jpg back.jpg --brand glossier --count 2 --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

import log_setup
from brand_core import BrandStudio
from brands import BRANDS, get_brand
from config import Settings
from errors import StudioError
from orchestrator import MAX_TARGET_COUNT
from storage import mime_for


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Restyle product photos for a brand (analysis + prompts + images)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python brand_cli.py shirt.jpg --brand nike
  python brand_cli.py front.jpg back.jpg --brand glossier --count 2 --json
  python brand_cli.py --list-brands
  python brand_cli.py --probe
""",
    )
    parser.add_argument("images", nargs="*", help="One or two product image files")
    parser.add_argument("--brand", default=None, help="Brand id (see --list-brands)")
    parser.add_argument(
        "--count",
        type=int,
        default=4,
        choices=range(1, MAX_TARGET_COUNT + 1),
        metavar=f"1-{MAX_TARGET_COUNT}",
        help="Number of variations (default: 4)",
    )
    parser.add_argument("--json", action="store_true", help="Print full JSON result to stdout")
    parser.add_argument("--list-brands", action="store_true", help="List brands and exit")
    parser.add_argument("--probe", action="store_true", help="Check whether Replicate is reachable and exit")

    args = parser.parse_args(argv)

    load_dotenv()
    log_setup.configure()

    if args.list_brands:
        _list_brands()
        return 0

    settings = Settings.from_env()
    studio = BrandStudio(settings)

    if args.probe:
        result = asyncio.run(studio.provider_status())
        _echo(f"  Replicate: {result.status} {result.detail}".rstrip())
        return 0 if result.status == "ok" else 1

    if not args.images:
        parser.error("at least one image file is required")
    if len(args.images) > 2:
        parser.error("at most two image files are supported")
    if not args.brand:
        parser.error("--brand is required")
    brand = get_brand(args.brand)
    if brand is None:
        print(f"✗  Unknown brand '{args.brand}' (try --list-brands)", file=sys.stderr)
        return 2

    paths = [Path(p) for p in args.images]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        print(f"✗  File not found: {', '.join(missing)}", file=sys.stderr)
        return 2

    _echo("\n  ✦ Cluely for Brands CLI")
    _echo(f"  Brand   : {brand['name']}")
    _echo(f"  Images  : {', '.join(str(p) for p in paths)}")
    _echo(f"  LLM     : {settings.text_provider}/{settings.text_model}"
          f"{' (mock)' if studio.copywriter.mock else ''}")
    _echo(f"  Provider: {settings.image_model if studio.provider else 'placeholder'}\n")

    try:
        result = asyncio.run(_run(studio, paths, brand, args.count))
    except StudioError as exc:
        print(f"\n✗  {exc}", file=sys.stderr)
        return 1

    _echo("\n  ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    _echo(f"  Method  : {result['method']}")
    _echo(f"  Images  : {len(result['images'])}/{args.count} generated")
    for url in result["images"]:
        _echo(f"    {url}")
    for index, reason in result["failures"].items():
        _echo(f"  ✗ Variation {index}: {reason}")
    _echo(f"  Duration: {result['duration']:.1f}s\n")

    if args.json:
        print(json.dumps(result, indent=2))
    return 0


async def _run(studio: BrandStudio, paths: List[Path], brand: dict, count: int) -> dict:
    urls = []
    for path in paths:
        saved_as = studio.storage.upload_filename(path.name, mime_for(path))
        urls.append(await studio.storage.save_async(saved_as, path.read_bytes()))
    _echo(f"  ✓ Stored {len(urls)} image(s)")

    analysis = await studio.analyze(image_urls=urls)
    _echo("  ✓ Product analyzed")

    prompt_text, _ = await studio.brand_prompt(analysis, brand)
    _echo("  ✓ Brand prompts written")

    _, outcome = await studio.generate_brand_images(urls, prompt_text, brand["id"], count)
    return {
        "brand": brand["name"],
        "analysis": analysis,
        "brandPrompt": prompt_text,
        "images": outcome.images,
        "method": outcome.method,
        "failures": {str(i): r for i, r in outcome.failures.items()},
        "variations": studio.summarize(outcome),
        "duration": outcome.duration,
    }


def _list_brands() -> None:
    print("\nAvailable Brands")
    print("─" * 40)
    for b in BRANDS:
        print(f"  {b['id']:<10} {b['name']}")
        print(f"    {b['tagline']}")
    print()


def _echo(msg: str) -> None:
    print(msg, flush=True)


if __name__ == "__main__":
    raise SystemExit(main())
