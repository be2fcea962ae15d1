"""Analyze photoluminescence spectra from CSV/TXT/XLSX files."""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Sequence, Set

from photolum_app.engine.analysis import analyze_batch
from photolum_app.engine.errors import ConfigError, IngestionError
from photolum_app.engine.excel_writer import write_analysis_workbook
from photolum_app.engine.plugin_api import Spectrum
from photolum_app.engine.recipe_model import FIT_MODELS, Recipe, default_recipe, load_recipe
from photolum_app.io.tabular import read_spectrum

logger = logging.getLogger("photolum_app")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("files", nargs="+", help="Spectrum files to analyze.")
    parser.add_argument(
        "--preset",
        help="YAML recipe preset (default: packaged pl_default.yaml).",
    )
    parser.add_argument(
        "--model",
        choices=FIT_MODELS,
        help="Peak profile used for curve synthesis.",
    )
    parser.add_argument("--prominence", type=float, help="Minimum peak prominence.")
    parser.add_argument("--min-height", type=float, dest="min_height", help="Minimum peak height.")
    parser.add_argument("--output", help="Directory for per-sample analysis workbooks.")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker processes for batch analysis (default: 1).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def build_recipe(args: argparse.Namespace) -> Recipe:
    recipe = load_recipe(args.preset) if args.preset else default_recipe()
    detection = recipe.detection
    if args.prominence is not None:
        detection = replace(detection, prominence=args.prominence)
    if args.min_height is not None:
        detection = replace(detection, min_height=args.min_height)
    recipe.detection = detection
    if args.model:
        recipe.model = args.model
    return recipe.ensure_valid()


def workbook_target(output_dir: Path, sample_id: str, used: Set[str]) -> Path:
    stem = f"{sample_id}_analysis"
    name = stem
    suffix = 2
    while name in used:
        name = f"{stem}_{suffix}"
        suffix += 1
    if name != stem:
        logger.warning("Workbook name %s.xlsx already used in this run; writing %s.xlsx", stem, name)
    used.add(name)
    return output_dir / f"{name}.xlsx"


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        recipe = build_recipe(args)
    except (ConfigError, OSError) as exc:
        raise SystemExit(f"Invalid recipe: {exc}")

    spectra: List[Spectrum] = []
    failures = 0
    for path in args.files:
        try:
            spectra.append(read_spectrum(path))
        except (IngestionError, OSError, ValueError) as exc:
            logger.error("Could not load %s: %s", path, exc)
            failures += 1

    output_dir = Path(args.output) if args.output else None
    used_names: Set[str] = set()
    for item in analyze_batch(spectra, recipe, workers=args.workers):
        if item.outcome is None:
            sys.stdout.write(f"{item.sample_id}\tfailed\t{item.error}\n")
            failures += 1
            continue
        outcome = item.outcome
        row = outcome.summary_row()
        r2 = f"{row['r_squared']:.4f}" if row["r_squared"] is not None else "-"
        sys.stdout.write(
            f"{outcome.sample_id}\t{outcome.status}\tpeaks={row['peaks']}\tR2={r2}\n"
        )
        if output_dir is not None:
            target = workbook_target(output_dir, outcome.sample_id, used_names)
            write_analysis_workbook(target, outcome)
            logger.info("Wrote %s", target)

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
