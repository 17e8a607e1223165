"""
cli.py - Command line entry point.

    gmpflow demo       run a full session on a catalog (simulated or LLM providers)
    gmpflow validate   check an encoded production plan against a catalog
    gmpflow overview   print the shop-floor overview
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from gmpflow import __version__
from gmpflow.bootstrap.config import GMPFlowConfig, load_config
from gmpflow.bootstrap.logging_setup import setup_logging
from gmpflow.core.catalog import Catalog, default_catalog, load_catalog
from gmpflow.core.models import Order, ProductionPlan
from gmpflow.core.serialization import dumps, loads
from gmpflow.errors import (
    ConstraintViolation,
    GMPFlowError,
    InvalidRecord,
    NoValidCandidates,
    ProviderUnavailable,
)
from gmpflow.llm.protocol import LLMProviderProtocol
from gmpflow.llm.provider_factory import create_llm_provider
from gmpflow.providers.generation import LLMPlanGenerator
from gmpflow.providers.perception import LLMPerceptionProvider
from gmpflow.providers.protocols import GenerationProvider, PerceptionProvider
from gmpflow.providers.simulated import SimulatedPerceptionProvider
from gmpflow.reporting.overview import shop_overview
from gmpflow.scheduling.generator import PlanningMode, RuleBasedPlanGenerator
from gmpflow.scheduling.scorer import PlanScorer
from gmpflow.validators.taxonomy import ValidationReport
from gmpflow.validators.validator import ConstraintValidator
from gmpflow.workflow.schema import GenerationOutcome, PlanExport
from gmpflow.workflow.session import SchedulingWorkflow

logger = logging.getLogger("gmpflow.cli")

EXIT_OK = 0
EXIT_BLOCKED = 1
EXIT_ERROR = 2

MODE_CHOICES = {
    "optimized": (PlanningMode.OPTIMIZED,),
    "gmp_strict": (PlanningMode.GMP_STRICT,),
    "both": (PlanningMode.OPTIMIZED, PlanningMode.GMP_STRICT),
}


def _load(path: Optional[str]) -> Catalog:
    return load_catalog(path) if path else default_catalog()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


# ==================== demo ====================

PROVIDER_SIMULATED = "simulated"
PROVIDER_LLM = "llm"

IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp", ".gif")


def read_images(directory: str, orders: Sequence[Order]) -> Dict[str, bytes]:
    """Photos named after their order id, e.g. ord-101.jpg."""
    folder = Path(directory)
    if not folder.is_dir():
        raise InvalidRecord(f"Image directory not found: {directory}", field="images")
    wanted = {o.order_id for o in orders}
    images = {}
    for path in sorted(folder.iterdir()):
        if path.suffix.lower() in IMAGE_SUFFIXES and path.stem in wanted:
            images[path.stem] = path.read_bytes()
    missing = sorted(wanted - set(images))
    if missing:
        logger.warning(f"No photo for {', '.join(missing)} in {directory}")
    return images


def build_providers(
    provider: str,
    catalog: Catalog,
    config: GMPFlowConfig,
    modes: Sequence[PlanningMode],
    images_dir: Optional[str] = None,
) -> Tuple[PerceptionProvider, GenerationProvider, Dict[str, bytes], Optional[LLMProviderProtocol]]:
    """
    Perception and generation providers for a demo run.

    `simulated` uses synthetic photos and the rule-based generator. `llm`
    sends real photos from `images_dir` and the planning prompt to the
    backend configured under `llm` (Anthropic or a local Ollama server).
    """
    scheduling = config.scheduling
    if provider == PROVIDER_LLM:
        try:
            llm = create_llm_provider(config.llm)
        except ValueError as e:
            raise ProviderUnavailable(config.llm.provider, str(e)) from e
        images = read_images(images_dir, catalog.orders) if images_dir else {}
        if not images:
            logger.warning("No photos supplied; every order will be unresolved after perception")
        generator = LLMPlanGenerator(
            llm,
            horizon_start=scheduling.horizon,
            stage_hours=scheduling.stage_durations,
            cleaning_interval_hours=scheduling.cleaning_interval_hours,
        )
        return LLMPerceptionProvider(llm), generator, images, llm

    if images_dir:
        logger.warning("--images is only used with the llm provider; using synthetic photos")
    perception, images = SimulatedPerceptionProvider.for_orders(catalog.orders)
    generator = RuleBasedPlanGenerator(
        modes=modes,
        stage_hours=scheduling.stage_durations,
        cleaning_interval_hours=scheduling.cleaning_interval_hours,
        horizon_start=scheduling.horizon,
        scorer=PlanScorer(scheduling.weights, scheduling.cleaning_interval_hours),
    )
    return perception, generator, images, None


async def run_demo(
    catalog: Catalog,
    config: GMPFlowConfig,
    modes: Sequence[PlanningMode],
    provider: str = PROVIDER_SIMULATED,
    images_dir: Optional[str] = None,
) -> Tuple[SchedulingWorkflow, GenerationOutcome, PlanExport]:
    """Drive one session from perception to a confirmed plan."""
    perception, generator, images, llm = build_providers(provider, catalog, config, modes, images_dir)
    session = SchedulingWorkflow(
        catalog.orders,
        catalog.equipment,
        perception,
        generator,
        config=config.scheduling,
    )

    try:
        await session.run_perception(images)
        session.advance_to_validation()
        session.advance_to_generation()
        outcome = await session.generate()
        if not outcome.ok or outcome.best is None:
            session.cancel()
            message = outcome.error.message if outcome.error else "No candidate plan"
            raise NoValidCandidates(message, rejected=len(outcome.rejected))

        session.select_plan(outcome.best.plan_id)
        return session, outcome, session.export()
    finally:
        close = getattr(llm, "close", None)
        if close is not None:
            await close()


def _render_export(export: PlanExport, outcome: GenerationOutcome) -> List[str]:
    lines = [f"Candidates ({len(outcome.candidates)}):"]
    for candidate in outcome.candidates:
        kpis = candidate.kpis
        marker = "*" if candidate.plan_id == export.plan_id else " "
        lines.append(
            f" {marker} {candidate.plan_id:<20} score {candidate.plan.score:7.2f}  "
            f"{kpis.total_duration_hours:6.1f} h  {kpis.cleaning_cycles} cleaning  "
            f"{kpis.equipment_utilization_pct:5.1f}% util"
        )
    for rejected in outcome.rejected:
        lines.append(f"   rejected {rejected.name}: {rejected.reason}")

    lines.append("")
    lines.append(f"Confirmed: {export.name} ({export.plan_id})")
    for card in export.cards:
        moisture = (
            f"{card.detected_moisture_pct:g}%" if card.detected_moisture_pct is not None else "n/a"
        )
        lines.append(
            f"  {card.order_id} {card.material_name} {card.quantity_kg:g} kg "
            f"due {card.deadline.isoformat()} moisture {moisture} "
            f"({card.visual_check.value}) {'on time' if card.on_time else 'LATE'}"
        )
        if card.toxicity_warning:
            lines.append(f"    ! {card.toxicity_warning}")
        for step in card.steps:
            flag = " [extended drying]" if step.extended_drying else ""
            lines.append(
                f"    {step.start:%m-%d %H:%M} - {step.end:%m-%d %H:%M}  "
                f"{step.process_type.value:<10} {step.equipment_name}{flag}"
            )
    for warning in export.warnings:
        lines.append(f"  warning [{warning.rule_id}] {warning.message}")
    return lines


def cmd_demo(parsed: argparse.Namespace, config: GMPFlowConfig) -> int:
    catalog = _load(parsed.catalog)
    try:
        session, outcome, export = asyncio.run(run_demo(
            catalog,
            config,
            MODE_CHOICES[parsed.mode],
            provider=parsed.provider,
            images_dir=parsed.images,
        ))
    except ConstraintViolation as e:
        if parsed.format == "json":
            _print_json(e.as_dict())
        else:
            print(f"Blocked: {e.message}")
            for finding in e.findings:
                print(f"  [{finding.rule_id}] {finding.message}")
        return EXIT_BLOCKED
    except NoValidCandidates as e:
        print(f"No valid plan: {e.message}", file=sys.stderr)
        return EXIT_BLOCKED

    if parsed.save_plan:
        Path(parsed.save_plan).write_text(dumps(session.confirmed_plan))
        logger.info(f"Saved confirmed plan to {parsed.save_plan}")

    if parsed.format == "json":
        _print_json({
            "session": session.snapshot(),
            "generation": outcome.to_dict(),
            "export": export.to_dict(),
        })
    else:
        print("\n".join(_render_export(export, outcome)))
    return EXIT_OK


# ==================== validate ====================

def _render_report(report: ValidationReport) -> List[str]:
    counts = report.counts
    lines = [
        f"{'VALID' if report.valid else 'INVALID'}: "
        f"{counts.get('blocking', 0)} blocking, {counts.get('warning', 0)} warning(s), "
        f"{report.cleaning_cycles} cleaning cycle(s)"
    ]
    for finding in report.findings:
        lines.append(f"  {finding.severity.value:<8} [{finding.rule_id}] {finding.message}")
        if finding.suggestion:
            lines.append(f"           -> {finding.suggestion}")
    return lines


def cmd_validate(parsed: argparse.Namespace, config: GMPFlowConfig) -> int:
    catalog = _load(parsed.catalog)
    plan = loads(Path(parsed.plan).read_text())
    if not isinstance(plan, ProductionPlan):
        raise InvalidRecord(f"{parsed.plan} does not hold a production plan", kind=type(plan).__name__)

    validator = ConstraintValidator(config.scheduling.cleaning_interval_hours)
    report = validator.validate(catalog.orders, catalog.equipment, plan)
    if parsed.format == "json":
        _print_json(report.to_dict())
    else:
        print("\n".join(_render_report(report)))
    return EXIT_OK if report.valid else EXIT_BLOCKED


# ==================== overview ====================

def cmd_overview(parsed: argparse.Namespace, config: GMPFlowConfig) -> int:
    catalog = _load(parsed.catalog)
    overview = shop_overview(catalog.orders, catalog.equipment)
    if parsed.format == "json":
        _print_json(overview.to_dict())
        return EXIT_OK

    print(f"Pending orders:   {overview.pending_orders} ({overview.pending_quantity_kg:g} kg)")
    print(f"  urgent:         {overview.urgent_orders}")
    print(f"  toxic:          {overview.toxic_orders}")
    print(f"Active equipment: {overview.active_equipment}/{overview.total_equipment}")
    if overview.maintenance_equipment:
        print(f"  maintenance:    {', '.join(overview.maintenance_equipment)}")
    for status, count in sorted(overview.equipment_by_status.items()):
        print(f"  {status:<15} {count}")
    return EXIT_OK


# ==================== entry point ====================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GMP production scheduling for TCM processing",
        prog="gmpflow",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (overrides configuration)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--catalog", help="Catalog JSON file (default: built-in sample shop)", default=None)
        sub.add_argument("--format", choices=["text", "json"], default="text", help="Output format")

    demo = subparsers.add_parser("demo", help="Run a full scheduling session")
    add_common(demo)
    demo.add_argument("--mode", choices=sorted(MODE_CHOICES), default="both", help="Planning strategies to generate")
    demo.add_argument(
        "--provider",
        choices=[PROVIDER_SIMULATED, PROVIDER_LLM],
        default=PROVIDER_SIMULATED,
        help="simulated: synthetic photos and rule-based plans; llm: the configured LLM backend",
    )
    demo.add_argument("--images", help="Directory of order photos named <order_id>.jpg (llm provider)", default=None)
    demo.add_argument("--save-plan", help="Write the confirmed plan as an encoded JSON envelope", default=None)
    demo.set_defaults(handler=cmd_demo)

    validate = subparsers.add_parser("validate", help="Validate an encoded production plan")
    validate.add_argument("plan", help="Plan JSON envelope")
    add_common(validate)
    validate.set_defaults(handler=cmd_validate)

    overview = subparsers.add_parser("overview", help="Show the shop-floor overview")
    add_common(overview)
    overview.set_defaults(handler=cmd_overview)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code: 0 success, 1 blocked by findings, 2 on errors
    """
    parsed = build_parser().parse_args(args)

    try:
        config = load_config(parsed.config)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot load configuration: {e}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        level=parsed.log_level or config.logging.level,
        log_file=config.logging.log_file,
        json_format=config.logging.json_logs,
        fmt=config.logging.format,
    )

    try:
        return parsed.handler(parsed, config)
    except GMPFlowError as e:
        logger.error(f"{e.code.name}: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        logger.error(f"I/O error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
