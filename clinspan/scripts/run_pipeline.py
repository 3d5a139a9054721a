#!/usr/bin/env python3
"""Run the annotation pipeline over a directory of clinical notes.

Every regular, non-hidden file in the input directory is annotated and written
to ``<output-dir>/<name>.xmi``; its signed concept codes go to
``<codes-dir>/<name>`` (the output directory unless ``--codes-dir`` is given).
When both go to one directory, inputs named ``*.xmi`` are refused, since their
code files would take the place of another input's XMI file.

Usage:
    clinspan-pipeline --input-dir notes/ --output-dir out/ --dictionary terms.bsv

    # Resources from a config file, four documents at a time
    clinspan-pipeline --input-dir notes/ --output-dir out/ --config clinspan.toml --workers 4
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from clinspan.config import load_config
from clinspan.errors import ConfigurationError, ResourceError
from clinspan.logging import set_level, setup_logging
from clinspan.pipeline.chain import build_chain
from clinspan.runner import PipelineRunner, find_input_files
from clinspan.xmi import XMI_SUFFIX

logger = setup_logging()


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parses command-line arguments for the pipeline script."""
    parser = argparse.ArgumentParser(
        description="Annotate clinical notes and write XMI and code files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Config file lookup (first match wins):
  --config FILE, $CLINSPAN_CONFIG, ./clinspan.toml

Examples:
  clinspan-pipeline --input-dir notes/ --output-dir out/ --dictionary terms.bsv
  clinspan-pipeline --input-dir notes/ --output-dir xmi/ --codes-dir codes/ --config clinspan.toml
""",
    )
    parser.add_argument("--input-dir", type=str, required=True, help="Directory of plain-text notes")
    parser.add_argument("--output-dir", type=str, required=True, help="Directory for XMI files (created if absent)")
    parser.add_argument(
        "--codes-dir",
        type=str,
        default=None,
        help="Existing directory for code files (default: the output directory; required for *.xmi inputs)",
    )
    parser.add_argument("--config", type=str, default=None, help="TOML config file")
    parser.add_argument("--dictionary", type=str, default=None, help="BSV term dictionary (overrides the config)")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of documents processed concurrently (default: 1)",
    )
    parser.add_argument(
        "--progress-interval",
        type=float,
        default=30.0,
        help="Seconds between progress reports (default: 30)",
    )
    parser.add_argument("--debug", action="store_true", help="Logging is done at DEBUG level")
    args = parser.parse_args(argv)
    if args.debug:
        set_level(logging.DEBUG)
    return args


async def main(argv: list[str] | None = None) -> None:
    """Runs the annotation pipeline."""
    args = parse_arguments(argv)

    input_dir = Path(args.input_dir)
    if not input_dir.is_dir():
        print(f"ERROR: Input directory does not exist: {input_dir}", file=sys.stderr)
        sys.exit(1)
    output_dir = Path(args.output_dir)
    codes_dir = Path(args.codes_dir) if args.codes_dir else output_dir
    if args.codes_dir and not codes_dir.is_dir():
        print(f"ERROR: Codes directory does not exist: {codes_dir}", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config(args.config, dictionary_path=args.dictionary, workers=args.workers)
        chain = build_chain(config)
    except (ConfigurationError, ResourceError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    input_files = find_input_files(input_dir)
    if not input_files:
        logger.warning(f"No input files found in {input_dir}")
        return

    if codes_dir.resolve() == output_dir.resolve():
        # A code file named "x.xmi" would overwrite the XMI of input "x".
        clashing = [p.name for p in input_files if p.name.endswith(XMI_SUFFIX)]
        if clashing:
            print(
                f"ERROR: Code files for {', '.join(clashing)} would clash with XMI files in {output_dir}; "
                "pass --codes-dir",
                file=sys.stderr,
            )
            sys.exit(1)

    # The XMI directory must exist before the first code file lands beside it.
    output_dir.mkdir(parents=True, exist_ok=True)
    runner = PipelineRunner(chain=chain, xmi_dir=output_dir, codes_dir=codes_dir)
    logger.info(f"Processing {len(input_files)} documents with {config.workers} worker(s)")
    result = await runner.run(input_files, workers=config.workers, progress_interval=args.progress_interval)
    for doc in result.document_results:
        if doc.errors:
            print(f"FAILED {doc.document_id}: {'; '.join(doc.errors)}", file=sys.stderr)
    print(
        f"{result.documents_processed - result.documents_failed}/{result.documents_processed} documents written, "
        f"{result.total_codes} codes",
        file=sys.stderr,
    )


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
