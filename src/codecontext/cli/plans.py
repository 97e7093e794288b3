"""codecontext plans: extract, list, advance and delete implementation plans.

Commands:
  codecontext plans list -n <ns>
  codecontext plans extract <file|-> -n <ns> [--store]
  codecontext plans step <plan-id> <step-id> <status> -n <ns>
  codecontext plans delete <plan-id> -n <ns> [--yes]
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.table import Table

from codecontext.cli.common import console, embedder_or_exit, load_or_exit, open_gateway, plan_store
from codecontext.cli.errors import err_no_plan_in_text, err_plan_not_found, err_upstream
from codecontext.errors import UpstreamServiceError
from codecontext.plans.models import STEP_STATUSES, Plan, render_plan_markdown
from codecontext.plans.parser import extract_plan
from codecontext.plans.store import PlanStore

plans_app = typer.Typer(
    name="plans",
    help="Manage implementation plans (list, extract, step, delete).",
    add_completion=False,
)

_Namespace = Annotated[str, typer.Option("--namespace", "-n", help="Namespace holding the plans.")]
_ProjectDir = Annotated[
    Path | None,
    typer.Option("--project-dir", hidden=True, help="Directory holding codecontext.yaml."),
]

_STATUS_STYLE = {
    "active": "[yellow]active[/]",
    "completed": "[green]completed[/]",
    "cancelled": "[red]cancelled[/]",
}


def _open_store(project_dir: Path | None) -> PlanStore:
    cfg = load_or_exit(project_dir)
    gateway = open_gateway(cfg)
    return plan_store(cfg, gateway, embedder_or_exit(cfg))


def _find_or_exit(store: PlanStore, namespace: str, plan_id: str) -> Plan:
    try:
        plan = store.get_plan(namespace, plan_id)
    except UpstreamServiceError as exc:
        console.print(err_upstream("Loading plans", exc))
        raise typer.Exit(1)
    if plan is None:
        console.print(err_plan_not_found(plan_id, namespace))
        raise typer.Exit(1)
    return plan


@plans_app.command("list")
def plans_list_cmd(namespace: _Namespace, project_dir: _ProjectDir = None) -> None:
    """List plans in a namespace, most recently updated first."""
    store = _open_store(project_dir)
    try:
        plans = store.get_active_plans(namespace)
    except UpstreamServiceError as exc:
        console.print(err_upstream("Loading plans", exc))
        raise typer.Exit(1)

    if not plans:
        console.print(f"[yellow]No plans in '{namespace}'.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Plans in '{namespace}'", show_header=True, header_style="bold")
    table.add_column("Id", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Updated")
    for plan in plans:
        done = sum(1 for s in plan.steps if s.status == "completed")
        table.add_row(
            plan.id,
            plan.title,
            plan.type,
            _STATUS_STYLE.get(plan.status, plan.status),
            f"{done}/{len(plan.steps)}",
            plan.updated,
        )
    console.print(table)


@plans_app.command("extract")
def plans_extract_cmd(
    source: Annotated[str, typer.Argument(help="Text file holding an assistant reply, or '-' for stdin.")],
    namespace: _Namespace,
    store: Annotated[bool, typer.Option("--store", help="Persist the extracted plan.")] = False,
    project_dir: _ProjectDir = None,
) -> None:
    """Extract a plan from assistant text and show (optionally store) it."""
    if source == "-":
        text = sys.stdin.read()
    else:
        path = Path(source)
        if not path.is_file():
            console.print(f"[red]Error:[/] File not found: {source}")
            raise typer.Exit(1)
        text = path.read_text(encoding="utf-8")

    plan = extract_plan(text, namespace=namespace)
    if plan is None:
        console.print(err_no_plan_in_text(source))
        raise typer.Exit(1)

    console.print(Markdown(render_plan_markdown(plan)))
    console.print(f"  [dim]type={plan.type} complexity={plan.metadata.get('complexity')} "
                  f"priority={plan.metadata.get('priority')}[/]")

    if store:
        try:
            _open_store(project_dir).store(plan)
        except UpstreamServiceError as exc:
            console.print(err_upstream("Storing plan", exc))
            raise typer.Exit(1)
        console.print(f"[green]✓[/] Stored plan {plan.id} in '{namespace}'")


@plans_app.command("step")
def plans_step_cmd(
    plan_id: Annotated[str, typer.Argument(help="Plan id.")],
    step_id: Annotated[str, typer.Argument(help="Step id.")],
    status: Annotated[str, typer.Argument(help="pending | in_progress | completed | failed")],
    namespace: _Namespace,
    project_dir: _ProjectDir = None,
) -> None:
    """Set the status of one plan step."""
    if status not in STEP_STATUSES:
        console.print(
            f"[red]Error:[/] Unknown step status '{status}'.\n"
            f"  Use one of: {', '.join(STEP_STATUSES)}"
        )
        raise typer.Exit(1)

    store = _open_store(project_dir)
    plan = _find_or_exit(store, namespace, plan_id)
    try:
        store.update_step_status(plan, step_id, status)  # type: ignore[arg-type]
    except KeyError:
        console.print(f"[red]Error:[/] Plan '{plan_id}' has no step '{step_id}'.")
        raise typer.Exit(1)
    except UpstreamServiceError as exc:
        console.print(err_upstream("Updating plan", exc))
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/] Step {step_id} → {status}; plan is {_STATUS_STYLE.get(plan.status, plan.status)}"
    )


@plans_app.command("delete")
def plans_delete_cmd(
    plan_id: Annotated[str, typer.Argument(help="Plan id.")],
    namespace: _Namespace,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    project_dir: _ProjectDir = None,
) -> None:
    """Delete a plan and all its stored versions."""
    store = _open_store(project_dir)
    plan = _find_or_exit(store, namespace, plan_id)
    if not yes and not typer.confirm(f"Delete plan '{plan.title}'?", default=False):
        console.print("[dim]Aborted.[/]")
        raise typer.Exit(0)
    try:
        deleted = store.delete_plan(plan)
    except UpstreamServiceError as exc:
        console.print(err_upstream("Deleting plan", exc))
        raise typer.Exit(1)
    console.print(f"[green]✓[/] Deleted plan {plan_id} ({deleted} record(s))")
