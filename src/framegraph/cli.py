"""Command line entry point for batch feature extraction."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

import numpy as np

from .application import FeatureExtractor
from .config import DEFAULT_CONFIG_PATH
from .diagnostics import DEFAULT_TRACE_PATH, enable_trace_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Frame graph feature extractor")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to configuration file")
    parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help="JSON waveform file (optionally .gz) or a directory of such files",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Directory receiving one <id>.npy feature matrix per waveform",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print the graph layout before processing",
    )
    parser.add_argument(
        "--trace",
        nargs="?",
        const=DEFAULT_TRACE_PATH,
        type=Path,
        help=f"Append an evaluation trace to the given file (default {DEFAULT_TRACE_PATH})",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.trace is not None:
        enable_trace_logging(True, args.trace)

    try:
        extractor = FeatureExtractor.from_file(args.config, input_path=args.input)
    except (OSError, ValueError, TypeError) as exc:
        print(f"error: cannot load configuration {args.config}: {exc}")
        return 2

    if args.summary:
        print(extractor.summary())

    if args.output is not None:
        args.output.mkdir(parents=True, exist_ok=True)

    count = 0
    try:
        for wav_id, features in extractor.process(args.input):
            print(f"{wav_id}: {features.shape[0]} frames x {features.shape[1]} values")
            if args.output is not None:
                np.save(args.output / f"{wav_id}.npy", features)
            count += 1
    except (OSError, ValueError) as exc:
        print(f"error: {exc}")
        return 1
    print(f"Processed {count} waveform(s)")
    return 0


__all__ = ["main", "build_parser"]
