from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from streamdigest import serialization
from streamdigest.aggregators import ShardedDigestBuilder, merge_digests
from streamdigest.errors import ConfigurationError, InvalidInputError
from streamdigest.models import DEFAULT_COMPRESSION, DigestConfig, DigestSummary
from streamdigest.reporters import RichReporter
from streamdigest.sources import TextSampleSource
from streamdigest.summary import DEFAULT_LEVELS, summarize_digest
from streamdigest.tdigest import TDigest

MERGED_LABEL = "<merged>"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamdigest", description="Streaming quantile estimation CLI"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Log compaction and merge details"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    summarize = subparsers.add_parser(
        "summarize",
        help="Estimate quantiles of newline-delimited samples or saved snapshots",
    )
    summarize.add_argument(
        "inputs",
        nargs="+",
        type=str,
        help="Sample files ('-' for stdin) or .json digest snapshots",
    )
    summarize.add_argument(
        "--compression",
        type=float,
        default=DEFAULT_COMPRESSION,
        help=f"Accuracy/memory trade-off (default: {DEFAULT_COMPRESSION:g})",
    )
    summarize.add_argument(
        "-q",
        "--quantile",
        dest="levels",
        type=float,
        action="append",
        help="Quantile level in [0, 1]; repeatable (default: min, p1, p5, p50, "
        "p95, p99, max)",
    )
    summarize.add_argument(
        "--save",
        type=str,
        default=None,
        help="Write the merged digest snapshot to this JSON file",
    )
    summarize.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for building shard digests (default: auto)",
    )
    return parser


def _is_snapshot(path: str) -> bool:
    return Path(path).suffix.lower() == ".json"


def _load_shards(
    inputs: Sequence[str], builder: ShardedDigestBuilder
) -> list[tuple[str, TDigest]]:
    """Build or load one digest per input, preserving input order."""
    sources = [
        TextSampleSource(path) for path in inputs if not _is_snapshot(path)
    ]
    built = iter(builder.build_shards(sources))
    labelled = iter(source.label for source in sources)

    shards: list[tuple[str, TDigest]] = []
    for path in inputs:
        if _is_snapshot(path):
            shards.append((path, serialization.load(path)))
        else:
            shards.append((next(labelled), next(built)))
    return shards


def _run_summarize(
    args: argparse.Namespace, *, console: Console
) -> int:
    levels: list[float] = args.levels or list(DEFAULT_LEVELS)
    invalid = [level for level in levels if not 0.0 <= level <= 1.0]
    if invalid:
        console.print(
            f"Quantile levels must be in [0, 1], got {invalid}.", markup=False
        )
        return 2

    try:
        config = DigestConfig.create(args.compression)
    except ConfigurationError as exc:
        console.print(str(exc), markup=False)
        return 2

    builder = ShardedDigestBuilder(config, num_workers=args.workers)
    try:
        shards = _load_shards(args.inputs, builder)
    except FileNotFoundError as exc:
        console.print(f"Input not found: {exc.filename or exc}", markup=False)
        return 2
    except OSError as exc:
        console.print(
            f"Cannot read input: {exc.filename or exc} ({exc.strerror})",
            markup=False,
        )
        return 2
    except InvalidInputError as exc:
        console.print(f"Invalid input: {exc}", markup=False)
        return 2

    merged = merge_digests(config, (digest for _, digest in shards))
    if merged.is_empty():
        console.print("No samples found; nothing to summarize.")
        return 1

    summaries: list[DigestSummary] = [
        summarize_digest(digest, label, levels)
        for label, digest in shards
        if not digest.is_empty()
    ]
    if len(shards) > 1:
        summaries.append(summarize_digest(merged, MERGED_LABEL, levels))

    RichReporter(console).render(summaries)

    if args.save is not None:
        serialization.save(merged, args.save)
        console.print(f"Saved merged digest to {args.save}")
    return 0


def run_cli(
    argv: Sequence[str] | None = None, *, console: Console | None = None
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.getLogger().setLevel(logging.DEBUG if args.verbose else logging.ERROR)
    out_console = console or Console()
    if args.command == "summarize":
        return _run_summarize(args, console=out_console)
    parser.error("Unknown command.")
    return 2


def main() -> None:
    logging.basicConfig(
        level=logging.ERROR,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    raise SystemExit(run_cli())
