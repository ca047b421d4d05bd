"""
Orquestación de un run: lock, cancelación por Ctrl+C, reconciliación y salida.

Lo usan tanto `hostplane apply` (planes YAML) como los comandos de recetas.
Las capas de CLI solo traducen el código devuelto a typer.Exit.
"""

import logging
import signal
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, Optional, Sequence

from rich.console import Console

from hostplane.core.infra.contracts import HandlerRegistry
from hostplane.core.reconciler import Reconciler
from hostplane.core.resources.models import Resource, RunPolicy, RunReport
from hostplane.core.runtime.lock import run_lock
from hostplane.core.runtime.resolver import lock_path
from vpstool.providers import default_registry
from vpstool.report import lookup_public_ip, render_plan, render_report, render_summary

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_ATTENTION = 2


@contextmanager
def cancel_on_interrupt(cancel: threading.Event) -> Iterator[threading.Event]:
    """
    Ctrl+C marca la cancelación; el recurso en curso termina y el resto
    queda Skipped(Cancelled). Un segundo Ctrl+C interrumpe de inmediato.
    """
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        if cancel.is_set():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        logger.warning("⚠ Cancelación solicitada; se termina el recurso en curso")
        cancel.set()

    signal.signal(signal.SIGINT, handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def exit_code(report: RunReport) -> int:
    return EXIT_ATTENTION if report.needs_attention else EXIT_OK


def execute(
    resources: Sequence[Resource],
    policy: RunPolicy,
    console: Console,
    dry_run: bool = False,
    use_lock: bool = True,
    facts: Optional[Dict[str, str]] = None,
    secrets: Optional[Dict[str, str]] = None,
    show_secrets: bool = False,
    registry: Optional[HandlerRegistry] = None,
    show_public_ip: bool = False,
    cancel: Optional[threading.Event] = None,
) -> int:
    """
    Ejecuta (o simula con dry_run) un plan y muestra el resultado.

    Los errores de declaración (DeclarationError) y RunLocked se propagan:
    el plan no se aplicó y la CLI decide cómo mostrarlos.

    Returns:
        EXIT_OK o EXIT_ATTENTION
    """
    reconciler = Reconciler(registry or default_registry(policy), policy)

    if dry_run:
        pending = render_plan(console, reconciler.plan(resources))
        return EXIT_ATTENTION if pending else EXIT_OK

    cancel = cancel or threading.Event()
    with ExitStack() as stack:
        if use_lock:
            stack.enter_context(run_lock(lock_path()))
        stack.enter_context(cancel_on_interrupt(cancel))
        report = reconciler.run(resources, cancel=cancel)

    render_report(console, report)
    if facts or secrets:
        render_summary(
            console,
            facts or {},
            secrets or {},
            show_secrets=show_secrets,
            public_ip=lookup_public_ip() if show_public_ip else None,
        )
    return exit_code(report)
