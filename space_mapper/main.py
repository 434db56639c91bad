#!/usr/bin/env python3
"""
Space Mapper - Main Entry Point

Maps target elements to the zones that contain them and writes the zone
values back onto the targets.

Usage:
    python -m space_mapper.main --zones zones.geojson --targets targets.geojson

    Preflight estimate only (nothing is written):
    python -m space_mapper.main --zones zones.geojson --targets targets.geojson --preflight-only

Performance precedence (highest first):
    --preset / --threads / --batch-size  >  template performance settings
    >  environment / CONFIG defaults
"""

import argparse
import dataclasses
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

# Fix Windows console encoding for emoji support
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from space_mapper.config import CONFIG
from space_mapper.config_types import AppConfig
from space_mapper.engine import run_preflight, run_space_mapping
from space_mapper.errors import SpaceMapperError
from space_mapper.models.data_models import MappingTemplate, PerformancePreset
from space_mapper.preflight.calibration import load_calibration
from space_mapper.reporting.exporters import export_estimate, export_run_outputs
from space_mapper.sources.geodata import (
    DataFramePropertyService,
    GeoDataFrameModelSource,
    load_model_layers,
)
from space_mapper.templates import TemplateStore

WORKSPACE_ROOT = Path.cwd()


# ═══════════════════════════════════════════════════════════════════════════
# 📋 LOGGING SETUP
# ═══════════════════════════════════════════════════════════════════════════


def setup_logging(app_config: AppConfig) -> Tuple[logging.Logger, Path]:
    """Configure the SpaceMapper logger with file and console handlers.

    Returns:
        Tuple of (logger, log_path). Log files are named run_{MMDD}_{HHMM}.log.
    """
    log_dir = app_config.file_paths.log_dir_path(WORKSPACE_ROOT)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"run_{datetime.now().strftime('%m%d_%H%M')}.log"

    logger = logging.getLogger("SpaceMapper")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    # File handler
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
    )

    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(fh)
    logger.addHandler(ch)

    return logger, log_path


# ═══════════════════════════════════════════════════════════════════════════
# ⚙️ ARGUMENTS
# ═══════════════════════════════════════════════════════════════════════════


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="space_mapper",
        description="Map targets to containing zones and write zone values back.",
    )
    parser.add_argument("--zones", required=True, help="Zones layer (any geopandas format)")
    parser.add_argument("--targets", required=True, help="Targets layer (any geopandas format)")
    parser.add_argument("--template", default="Default", help="Template name (default: Default)")
    parser.add_argument("--template-dir", default=None, help="Directory holding the template store")
    parser.add_argument(
        "--preset",
        choices=[p.value for p in PerformancePreset],
        default=None,
        help="Performance preset (overrides the template and config)",
    )
    parser.add_argument("--preflight-only", action="store_true", help="Estimate only, never write")
    parser.add_argument("--threads", type=int, default=None, help="Max worker threads, -1 = auto (overrides the template and config)")
    parser.add_argument("--batch-size", type=int, default=None, help="Targets per batch (overrides the template and config)")
    parser.add_argument("--output-dir", default=None, help="Report output directory")
    return parser


def _apply_overrides(app_config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Command-line values win over CONFIG / environment values."""
    raw = dict(CONFIG)
    performance = dict(raw.get("performance", {}))
    if args.preset is not None:
        performance["preset"] = args.preset
    if args.threads is not None:
        performance["max_threads"] = args.threads
    if args.batch_size is not None:
        performance["batch_size"] = args.batch_size
    raw["performance"] = performance
    return app_config.replace(performance=AppConfig.from_dict(raw).performance)


def _apply_template_overrides(
    template: MappingTemplate, args: argparse.Namespace
) -> MappingTemplate:
    """Drop template performance settings the command line already set.

    The template version is unchanged; nothing is saved back to the store.
    """
    changes = {}
    if args.preset is not None:
        changes["preset"] = None
    if args.threads is not None:
        changes["max_threads"] = None
    if args.batch_size is not None:
        changes["batch_size"] = None
    if not changes:
        return template
    return dataclasses.replace(
        template, performance=dataclasses.replace(template.performance, **changes)
    )


# ═══════════════════════════════════════════════════════════════════════════
# 🚀 ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    app_config = _apply_overrides(AppConfig.from_dict(CONFIG), args)
    logger, log_path = setup_logging(app_config)

    logger.info("=" * 60)
    logger.info("🎯 Space Mapper")
    logger.info("=" * 60)
    logger.info(f"   Log file: {log_path}")

    template_dir = (
        Path(args.template_dir)
        if args.template_dir
        else app_config.file_paths.template_dir_path(WORKSPACE_ROOT)
    )
    template = TemplateStore(template_dir).get(args.template)
    if template is None:
        logger.error(f"❌ Template {args.template!r} not found in {template_dir}")
        return 2
    template = _apply_template_overrides(template, args)

    output_dir = (
        Path(args.output_dir)
        if args.output_dir
        else app_config.file_paths.output_dir_path(WORKSPACE_ROOT)
    )
    output_dir.mkdir(parents=True, exist_ok=True)

    total_start = time.perf_counter()
    try:
        zones_gdf, targets_gdf = load_model_layers(args.zones, args.targets)
        source = GeoDataFrameModelSource(zones_gdf, targets_gdf)

        if args.preflight_only:
            estimate = run_preflight(
                source, template, app_config, calibration=load_calibration(output_dir)
            )
            export_estimate(estimate, output_dir)
            return 0

        properties = DataFramePropertyService(source)
        run = run_space_mapping(
            source,
            properties,
            template,
            app_config,
            calibration_dir=output_dir,
        )
        export_run_outputs(run, output_dir)

        mapped_path = output_dir / "targets_mapped.geojson"
        source.targets_gdf.to_file(mapped_path, driver="GeoJSON")
        logger.info(f"📄 Mapped targets written: {mapped_path}")

    except SpaceMapperError as e:
        logger.error(f"❌ Space mapping failed: {e}")
        return 1

    logger.info(f"✅ Done in {time.perf_counter() - total_start:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
