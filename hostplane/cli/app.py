"""
Aplicación CLI de hostplane.

Solo compone comandos; la lógica vive en hostplane.core (motor) y en vpstool
(providers, recetas, planes YAML y salida).
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from hostplane import __version__
from hostplane.core.errors import HostplaneError
from hostplane.core.runtime.resolver import default_policy, lock_path, state_root
from vpstool import orchestration
from vpstool.core.doctor import doctor_ok, run_doctor
from vpstool.core.permissions import require_root
from vpstool.declarative import load_plan
from vpstool.recipes.cli import app as recipes_app

# .env del directorio de trabajo antes de leer cualquier variable HOSTPLANE_*
_env = Path.cwd() / ".env"
if _env.exists():
    load_dotenv(_env)

app = typer.Typer(
    name="hostplane",
    help="hostplane - Aprovisionamiento declarativo e idempotente de hosts Debian",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

app.add_typer(recipes_app, name="recipes", help="Recetas de aprovisionamiento (basic, shadowsocks, xray, vless)")


def setup_logging(verbose: bool = False) -> None:
    """Logging del motor vía RichHandler; --verbose pasa a DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Logs de depuración (comandos ejecutados)"),
):
    """hostplane: probe → apply → verify por recurso"""
    setup_logging(verbose)


def _load(plan_file: Path):
    try:
        return load_plan(plan_file)
    except HostplaneError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)


@app.command()
def apply(
    plan_file: Path = typer.Argument(..., help="Plan YAML"),
    halt: bool = typer.Option(False, "--halt", help="Detener tras el primer fallo"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=1, help="Timeout por comando (s)"),
    show_secrets: bool = typer.Option(False, "--show-secrets", help="Mostrar secretos en el resumen"),
    lock: bool = typer.Option(True, "--lock/--no-lock", help="Serializar runs con lock"),
):
    """Reconcilia el host contra un plan YAML"""
    plan = _load(plan_file)
    if not require_root(console):
        raise typer.Exit(code=orchestration.EXIT_INVALID)

    halt_policy = True if halt else plan.policy.halt_on_first_failure
    try:
        policy = default_policy(
            halt_on_first_failure=halt_policy,
            per_command_timeout=timeout or plan.policy.per_command_timeout,
        )
        code = orchestration.execute(
            plan.resources,
            policy,
            console,
            use_lock=lock,
            facts=plan.facts,
            secrets=plan.secrets,
            show_secrets=show_secrets,
        )
    except HostplaneError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    raise typer.Exit(code=code)


@app.command()
def plan(
    plan_file: Path = typer.Argument(..., help="Plan YAML"),
):
    """Dry run: muestra qué recursos cambiarían (solo probes)"""
    loaded = _load(plan_file)
    try:
        policy = default_policy(per_command_timeout=loaded.policy.per_command_timeout)
        code = orchestration.execute(loaded.resources, policy, console, dry_run=True)
    except HostplaneError as e:
        console.print(f"[red]✘ {e}[/red]")
        raise typer.Exit(code=orchestration.EXIT_INVALID)
    raise typer.Exit(code=code)


@app.command()
def doctor():
    """Verifica herramientas y permisos del host"""
    results = run_doctor(console)
    raise typer.Exit(code=orchestration.EXIT_OK if doctor_ok(results) else orchestration.EXIT_INVALID)


@app.command()
def version():
    """Muestra la versión de hostplane"""
    console.print(Panel.fit(
        "[bold cyan]hostplane[/bold cyan]\n"
        "[dim]Reconciliador declarativo de hosts Debian[/dim]\n\n"
        f"[bold]Versión:[/bold] {__version__}\n"
        f"[bold]Estado:[/bold] {state_root()}\n"
        f"[bold]Lock:[/bold] {lock_path()}",
        border_style="cyan"
    ))


def main():
    app()
