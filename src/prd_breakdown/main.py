"""
prd-breakdown - Main Entry Point

Command-line interface for decomposing a product requirements document
into epics, tasks and subtasks and delivering them to an issue tracker
or a JSON file.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import IntPrompt, Prompt
from rich.table import Table

from .config.settings import Settings, load_settings
from .core.checkpoint import load_checkpoint, save_checkpoint
from .core.exceptions import PRDBreakdownError, SinkError, StageError
from .core.pipeline import DecompositionPipeline, PipelineResult, Strategy
from .llm.base import GenerationCapability
from .llm.detector import detect_capability
from .models.hierarchy import Epic, ProjectContext
from .sinks.base import CreateResult, Sink
from .sinks.beads import BeadsSink
from .sinks.json_sink import JSONSink
from .utils.logger import console, get_logger, setup_logging

logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="prd-breakdown",
        description="Decompose a PRD into validated epics, tasks and subtasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Break down a PRD into beads issues
  prd-breakdown docs/prd.md

  # Write JSON instead, forcing the multi-stage pipeline
  prd-breakdown docs/prd.md -o json --output-path plan.json --multi-stage

  # Review structure and check for gaps
  prd-breakdown docs/prd.md --review --validate

  # Resume from a checkpoint without regenerating
  prd-breakdown --from-json /tmp/prd-breakdown-checkpoint.json
        """,
    )

    parser.add_argument(
        "prd_file",
        nargs="?",
        type=Path,
        help="Path to the PRD document",
    )

    # Generation targets
    parser.add_argument("--epics", "-e", type=int, help="Target number of epics (default: 3)")
    parser.add_argument("--tasks", "-t", type=int, help="Target tasks per epic (default: 5)")
    parser.add_argument("--subtasks", "-s", type=int, help="Target subtasks per task (default: 4)")
    parser.add_argument(
        "--priority", "-p",
        type=str,
        choices=["critical", "high", "medium", "low", "very-low"],
        help="Default task priority (default: medium)",
    )
    parser.add_argument(
        "--testing",
        type=str,
        choices=["minimal", "standard", "comprehensive"],
        help="Testing detail level (default: comprehensive)",
    )

    # Generator options
    parser.add_argument(
        "--llm", "-l",
        type=str,
        choices=["auto", "claude-cli", "codex-cli", "anthropic-api"],
        help="Generation backend (default: auto)",
    )
    parser.add_argument("--model", "-m", type=str, help="Model to use for every stage")
    parser.add_argument("--epic-model", type=str, help="Model to use for epic generation")
    parser.add_argument("--task-model", type=str, help="Model to use for task generation")
    parser.add_argument("--subtask-model", type=str, help="Model to use for subtask generation")

    strategy_group = parser.add_mutually_exclusive_group()
    strategy_group.add_argument(
        "--multi-stage",
        action="store_true",
        help="Always use the three-stage pipeline",
    )
    strategy_group.add_argument(
        "--single-shot",
        action="store_true",
        help="Always generate the hierarchy in one call",
    )
    parser.add_argument(
        "--smart-threshold",
        type=int,
        help="Line count above which multi-stage is used; 0 disables (default: 300)",
    )
    parser.add_argument(
        "--full-context",
        action="store_true",
        default=None,
        help="Send the whole PRD to task and subtask prompts",
    )

    # Post-passes
    parser.add_argument("--review", action="store_true", default=None, help="Run the structural review pass")
    parser.add_argument("--validate", action="store_true", default=None, help="Check the plan for gaps")
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Review epics before tasks are generated (multi-stage only)",
    )

    # Output options
    parser.add_argument("--output", "-o", type=str, choices=["beads", "json"], help="Output sink (default: beads)")
    parser.add_argument("--output-path", type=Path, help="File for the json sink (default: stdout)")
    parser.add_argument("--dry-run", action="store_true", help="Preview without creating items")
    parser.add_argument("--from-json", type=Path, help="Skip generation and load a saved hierarchy")
    parser.add_argument("--save-json", type=Path, help="Save the generated hierarchy before delivery")
    parser.add_argument("--config", type=Path, help="Config file (default: ./.prd-breakdown.yaml or ~/.prd-breakdown.yaml)")

    # Verbosity options
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress all output except results",
    )

    args = parser.parse_args(argv)
    if args.prd_file is None and args.from_json is None:
        parser.error("a PRD file is required unless --from-json is given")
    return args


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Map CLI flags onto settings fields; unset flags are None."""
    return {
        "epics": args.epics,
        "tasks_per_epic": args.tasks,
        "subtasks_per_task": args.subtasks,
        "priority": args.priority,
        "testing": args.testing,
        "llm": args.llm,
        "model": args.model,
        "epic_model": args.epic_model,
        "task_model": args.task_model,
        "subtask_model": args.subtask_model,
        "smart_threshold": args.smart_threshold,
        "full_context": args.full_context,
        "review": args.review,
        "validate_plan": args.validate,
        "output": args.output,
        "output_path": str(args.output_path) if args.output_path else None,
    }


def choose_strategy(args: argparse.Namespace) -> Strategy:
    if args.multi_stage or args.interactive:
        return Strategy.MULTI_STAGE
    if args.single_shot:
        return Strategy.SINGLE_SHOT
    return Strategy.AUTO


def build_sink(settings: Settings, dry_run: bool) -> Sink:
    if settings.output == "json":
        return JSONSink(output_path=settings.output_path, dry_run=dry_run)
    return BeadsSink(
        working_dir=settings.working_dir,
        dry_run=dry_run,
        include_context=settings.include_context,
        include_testing=settings.include_testing,
    )


def interactive_epic_review(epics: list[Epic], project: ProjectContext) -> list[Epic]:
    """Let the operator keep, add or drop epics before tasks are generated."""
    epics = list(epics)
    while True:
        table = Table(title=f"Epics for {project.product_name or 'project'}")
        table.add_column("#", justify="right")
        table.add_column("ID")
        table.add_column("Title")
        table.add_column("Depends on")
        for number, epic in enumerate(epics, start=1):
            table.add_row(str(number), epic.temp_id, epic.title, ", ".join(epic.depends_on))
        console.print(table)

        choice = Prompt.ask(
            "Continue (c), add an epic (a) or drop an epic (d)",
            choices=["c", "a", "d"],
            default="c",
            console=console,
        )
        if choice == "c":
            return epics
        if choice == "a":
            title = Prompt.ask("Epic title", console=console).strip()
            if not title:
                continue
            description = Prompt.ask("Description", default="", console=console)
            # id is assigned when the reviewed epics are renumbered
            epics.append(Epic(title=title, description=description))
        elif choice == "d" and len(epics) > 1:
            number = IntPrompt.ask("Epic number to drop", console=console)
            if 1 <= number <= len(epics):
                dropped = epics.pop(number - 1)
                console.print(f"[yellow]Dropped[/yellow] {dropped.title}")


def print_summary(result: PipelineResult, created: Optional[CreateResult], quiet: bool) -> None:
    if quiet:
        return

    metadata = result.response.metadata
    lines = [
        "[bold green]Success![/bold green]\n",
        f"Project: {result.response.project.product_name}",
        f"  • {metadata.total_epics} epics",
        f"  • {metadata.total_tasks} tasks",
        f"  • {metadata.total_subtasks} subtasks",
    ]
    if result.strategy:
        lines.append(f"Strategy: {result.strategy.value}")
    if result.review:
        lines.append(f"Review: {result.review.review_notes}")
    if created:
        lines.append(
            f"Created {len(created.created)} items, {created.stats.dependencies} dependencies"
            + (f", [red]{len(created.failed)} failed[/red]" if created.failed else "")
        )
    console.print(Panel("\n".join(lines), title="Breakdown Complete", border_style="green"))

    if result.gap_report:
        console.print(Panel(result.gap_report.render(), title="Gap Validation", border_style="yellow"))


def make_capabilities(settings: Settings) -> dict[str, Optional[GenerationCapability]]:
    """Build the default generator plus any stage-specific ones."""
    capabilities: dict[str, Optional[GenerationCapability]] = {"default": detect_capability(settings)}
    stage_models = {
        "epics": settings.epic_model,
        "tasks": settings.task_model,
        "subtasks": settings.subtask_model,
    }
    for stage, model in stage_models.items():
        capabilities[stage] = detect_capability(settings, stage) if model else None
    return capabilities


async def close_capabilities(capabilities: Iterable[Optional[GenerationCapability]]) -> None:
    """Close each distinct generator once."""
    closed: set[int] = set()
    for capability in capabilities:
        if capability is None or id(capability) in closed:
            continue
        closed.add(id(capability))
        await capability.close()


async def run_breakdown(args: argparse.Namespace, settings: Settings) -> int:
    """Run generation (or load a checkpoint), the post-passes and delivery."""
    needs_generator = args.from_json is None or settings.review or settings.validate_plan
    capabilities: dict[str, Optional[GenerationCapability]] = {}
    if needs_generator:
        capabilities = make_capabilities(settings)
    try:
        return await execute_breakdown(args, settings, capabilities)
    finally:
        await close_capabilities(capabilities.values())


async def execute_breakdown(
    args: argparse.Namespace,
    settings: Settings,
    capabilities: dict[str, Optional[GenerationCapability]],
) -> int:
    capability = capabilities.get("default")

    pipeline = DecompositionPipeline(
        capability,
        settings.to_parse_config(),
        strategy=choose_strategy(args),
        smart_threshold=settings.smart_threshold,
        review=settings.review,
        validate_gaps=settings.validate_plan,
        epic_capability=capabilities.get("epics"),
        task_capability=capabilities.get("tasks"),
        subtask_capability=capabilities.get("subtasks"),
        epic_review_hook=interactive_epic_review if args.interactive else None,
    )

    document = ""
    if args.prd_file is not None:
        try:
            document = args.prd_file.read_text(encoding="utf-8")
        except OSError as e:
            console.print(f"[red]Error:[/red] Cannot read PRD file: {e}")
            return 1

    if not args.quiet and capability is not None:
        console.print(Panel(
            f"[bold]PRD:[/bold] {args.prd_file or '-'}\n"
            f"[bold]Generator:[/bold] {capability.describe()}\n"
            f"[bold]Targets:[/bold] {settings.epics} epics, {settings.tasks_per_epic} tasks/epic, "
            f"{settings.subtasks_per_task} subtasks/task",
            title="PRD Breakdown",
            border_style="blue",
        ))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        disable=args.quiet or args.interactive,
    ) as progress:
        task = progress.add_task("Preparing...", total=None)

        def progress_callback(message: str) -> None:
            progress.update(task, description=message.strip())

        pipeline.progress_callback = progress_callback

        if args.from_json is not None:
            tree = load_checkpoint(args.from_json)
            result = await pipeline.finalize(tree, document)
        else:
            result = await pipeline.run(document)
        progress.update(task, description="[green]✓[/green] Hierarchy ready")

    if args.save_json:
        save_checkpoint(result.response, args.save_json)
        if not args.quiet:
            console.print(f"[green]✓[/green] Hierarchy saved to {args.save_json}")

    created = await pipeline.deliver(result.response, build_sink(settings, args.dry_run))
    print_summary(result, created, args.quiet)
    return 0


def log_level_for(args: argparse.Namespace, configured: str = "WARNING") -> str:
    """Verbosity flags win over the configured log level."""
    if args.verbose >= 2:
        return "DEBUG"
    if args.verbose >= 1:
        return "INFO"
    if args.quiet:
        return "ERROR"
    return configured


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(log_level_for(args))

    try:
        settings = load_settings(args.config, settings_overrides(args))
        setup_logging(log_level_for(args, settings.log_level))
        return asyncio.run(run_breakdown(args, settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130
    except StageError as e:
        console.print(f"[red]Error:[/red] {e.stage} stage failed" + (f" at {e.unit_id}" if e.unit_id else ""))
        console.print(f"  {e.cause}")
        return 1
    except SinkError as e:
        console.print(f"[red]Error:[/red] {e}")
        if e.checkpoint_path:
            console.print(f"Hierarchy saved to {e.checkpoint_path}")
            console.print(f"Resume with: prd-breakdown --from-json {e.checkpoint_path}")
        return 1
    except PRDBreakdownError as e:
        logger.debug(f"Failure details: {e.to_dict()}")
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
