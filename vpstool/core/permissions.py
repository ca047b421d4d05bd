"""
Módulo Permissions - Verificación de permisos
"""

import os
from typing import Optional

from rich.console import Console


def is_root() -> bool:
    return os.geteuid() == 0


def require_root(console: Optional[Console] = None) -> bool:
    """
    Verifica si se tienen permisos de root

    Args:
        console: Console de Rich para mostrar error

    Returns:
        True si se tiene root
    """
    if is_root():
        return True

    if console:
        console.print("[red]✘ Se requieren permisos de root[/red]")
        console.print("[yellow]Ejecuta con sudo[/yellow]")

    return False
