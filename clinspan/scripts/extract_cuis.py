#!/usr/bin/env python3
"""Write code files for a directory of XMI files.

Each ``*.xmi`` file in the input directory becomes one code file in the output
directory, named after the source document recorded in the XMI.

Usage:
    clinspan-extract-cuis --xmi-dir out/ --output-dir codes/
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from clinspan.logging import set_level, setup_logging
from clinspan.runner import CodeExtractionRunner, find_input_files
from clinspan.xmi import XMI_SUFFIX

logger = setup_logging()


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parses command-line arguments for the code extraction script."""
    parser = argparse.ArgumentParser(description="Extract signed concept codes from XMI files")
    parser.add_argument("--xmi-dir", type=str, required=True, help="Directory of XMI files")
    parser.add_argument("--output-dir", type=str, required=True, help="Existing directory for code files")
    parser.add_argument("--workers", type=int, default=1, help="Number of files processed concurrently (default: 1)")
    parser.add_argument("--debug", action="store_true", help="Logging is done at DEBUG level")
    args = parser.parse_args(argv)
    if args.debug:
        set_level(logging.DEBUG)
    return args


async def main(argv: list[str] | None = None) -> None:
    """Runs code extraction over an XMI directory."""
    args = parse_arguments(argv)

    xmi_dir = Path(args.xmi_dir)
    if not xmi_dir.is_dir():
        print(f"ERROR: XMI directory does not exist: {xmi_dir}", file=sys.stderr)
        sys.exit(1)
    output_dir = Path(args.output_dir)
    if not output_dir.is_dir():
        print(f"ERROR: Output directory does not exist: {output_dir}", file=sys.stderr)
        sys.exit(1)

    xmi_files = find_input_files(xmi_dir, suffix=XMI_SUFFIX)
    if not xmi_files:
        logger.warning(f"No XMI files found in {xmi_dir}")
        return

    runner = CodeExtractionRunner(codes_dir=output_dir)
    result = await runner.run(xmi_files, workers=max(args.workers, 1))
    for doc in result.document_results:
        if doc.errors:
            print(f"FAILED {doc.document_id}: {'; '.join(doc.errors)}", file=sys.stderr)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
