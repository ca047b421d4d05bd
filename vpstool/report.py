"""
Módulo Report - Salida rich de runs, dry runs y resumen final

Los secretos (contraseñas, UUIDs, auth keys) se muestran como **** salvo que
se pida explícitamente --show-secrets.
"""

from typing import Dict, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hostplane.core.errors import HostplaneError
from hostplane.core.resources.models import OutcomeStatus, ProbeResult, Resource, RunReport
from vpstool.core.tools import CommandRunner

REDACTED = "****"

STATUS_STYLES = {
    OutcomeStatus.SATISFIED: "[green]✔ Satisfied[/green]",
    OutcomeStatus.APPLIED: "[cyan]✔ Applied[/cyan]",
    OutcomeStatus.FAILED: "[red]✘ Failed[/red]",
    OutcomeStatus.SKIPPED: "[yellow]⚠ Skipped[/yellow]",
}


def redact(value: Optional[str], show_secrets: bool = False) -> str:
    if value is None:
        return "[dim]N/A[/dim]"
    return escape(value) if show_secrets else REDACTED


def outcome_detail(outcome) -> str:
    """Detalle de un outcome; para errores incluye el kind y la key bloqueante."""
    if outcome.error is None:
        return outcome.detail
    text = f"{outcome.error.kind.value}: {outcome.error.message}"
    if outcome.error.blocking_key and outcome.error.blocking_key not in outcome.error.message:
        text += f" (bloquea: {outcome.error.blocking_key})"
    return text


def render_report(console: Console, report: RunReport, title: str = "Resultado") -> None:
    """Tabla key / estado / detalle y panel resumen del run."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Recurso", style="cyan")
    table.add_column("Estado")
    table.add_column("Detalle", style="dim")
    for outcome in report:
        table.add_row(escape(outcome.key), STATUS_STYLES[outcome.status], escape(outcome_detail(outcome)))
    console.print(table)

    for outcome in report:
        if outcome.error is not None and outcome.error.output:
            console.print(Panel(
                escape(outcome.error.output),
                title=f"[red]{escape(outcome.key)}[/red]",
                border_style="red",
            ))

    satisfied, applied, failed, skipped = report.summary()
    if report.needs_attention:
        headline = "[bold yellow]⚠ El run requiere atención[/bold yellow]"
        border = "yellow"
    elif report.changed:
        headline = "[bold green]✅ Host actualizado[/bold green]"
        border = "green"
    else:
        headline = "[bold green]✅ Nada que hacer: el host ya cumple el plan[/bold green]"
        border = "green"
    console.print(Panel.fit(
        f"{headline}\n\n"
        f"[bold]Satisfechos:[/bold] {satisfied}\n"
        f"[bold]Aplicados:[/bold] {applied}\n"
        f"[bold]Fallidos:[/bold] {failed}\n"
        f"[bold]Omitidos:[/bold] {skipped}",
        border_style=border,
    ))


def render_plan(console: Console, probes: Sequence[Tuple[Resource, ProbeResult]]) -> int:
    """
    Tabla de drift de un dry run.

    Returns:
        Número de recursos que requieren cambios
    """
    table = Table(title="Plan (dry run)", show_header=True, header_style="bold cyan")
    table.add_column("Recurso", style="cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Estado")
    table.add_column("Detalle", style="dim")
    pending = 0
    for resource, result in probes:
        if result.satisfied:
            state = "[green]✔ Sin cambios[/green]"
        else:
            state = "[yellow]⚠ Cambiaría[/yellow]"
            pending += 1
        table.add_row(escape(resource.key), resource.kind.value, state, escape(result.detail))
    console.print(table)
    if pending:
        console.print(f"\n[yellow]⚠ {pending} de {len(probes)} recursos requieren cambios[/yellow]")
    else:
        console.print("\n[bold green]✅ El host ya cumple el plan[/bold green]")
    return pending


def render_summary(
    console: Console,
    facts: Dict[str, str],
    secrets: Dict[str, str],
    show_secrets: bool = False,
    public_ip: Optional[str] = None,
    title: str = "Resumen",
) -> None:
    """Panel final con datos de conexión; secretos enmascarados por defecto."""
    table = Table(show_header=False, box=None)
    table.add_column("Campo", style="bold")
    table.add_column("Valor")
    if public_ip:
        table.add_row("IP pública", public_ip)
    for name, value in facts.items():
        table.add_row(name, escape(str(value)))
    for name, value in secrets.items():
        table.add_row(name, redact(value, show_secrets))
    console.print(Panel(table, title=f"[bold cyan]{title}[/bold cyan]", border_style="cyan"))
    if secrets and not show_secrets:
        console.print("[dim]Secretos ocultos; usa --show-secrets para mostrarlos[/dim]")


def lookup_public_ip(runner: Optional[CommandRunner] = None) -> Optional[str]:
    """IP pública vía ifconfig.me (best effort; None si no hay red o curl)."""
    runner = runner or CommandRunner(timeout=5)
    try:
        result = runner(["curl", "-s", "--max-time", "5", "ifconfig.me"])
    except HostplaneError:
        return None
    ip = result.stdout.strip()
    if not result.ok or not ip or len(ip) > 45:
        return None
    return ip
