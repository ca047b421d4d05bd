"""
Resolución de rutas de estado y de la política por defecto.

- state_root(): directorio canónico de estado (/var/lib/hostplane/).
- lock_path(): archivo de lock que serializa runs contra el mismo host.
- pending_dir(): marcas de post_commands pendientes entre runs.
- default_policy(): RunPolicy construida desde variables de entorno.

El core NO escribe en disco aquí; solo expone rutas y valores.
"""

import os
from pathlib import Path
from typing import Optional

from hostplane.core.errors import HostplaneError
from hostplane.core.resources.models import RunPolicy


# Ruta canónica del estado (fuera del repo)
HOSTPLANE_STATE_ROOT = Path("/var/lib/hostplane")

DEFAULT_COMMAND_TIMEOUT = 300.0

_TRUE = {"1", "true", "yes", "y", "si", "sí"}


def state_root() -> Path:
    """
    Directorio raíz del estado de hostplane.
    Override: HOSTPLANE_STATE_ROOT.
    """
    explicit = os.environ.get("HOSTPLANE_STATE_ROOT", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    return HOSTPLANE_STATE_ROOT


def lock_path() -> Path:
    return state_root() / "run.lock"


def pending_dir() -> Path:
    """Marcas de post_commands que quedaron sin completar."""
    return state_root() / "pending"


def _env_timeout() -> float:
    raw = os.environ.get("HOSTPLANE_COMMAND_TIMEOUT", "").strip()
    if not raw:
        return DEFAULT_COMMAND_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        raise HostplaneError(f"HOSTPLANE_COMMAND_TIMEOUT inválido: {raw!r}")
    if value <= 0:
        raise HostplaneError("HOSTPLANE_COMMAND_TIMEOUT debe ser mayor que 0")
    return value


def default_policy(
    halt_on_first_failure: Optional[bool] = None,
    per_command_timeout: Optional[float] = None,
) -> RunPolicy:
    """
    Política efectiva: argumentos explícitos > variables de entorno > defaults.
    """
    if halt_on_first_failure is None:
        halt_on_first_failure = os.environ.get("HOSTPLANE_HALT_ON_FAILURE", "").strip().lower() in _TRUE
    if per_command_timeout is None:
        per_command_timeout = _env_timeout()
    return RunPolicy(
        halt_on_first_failure=halt_on_first_failure,
        per_command_timeout=per_command_timeout,
    )
