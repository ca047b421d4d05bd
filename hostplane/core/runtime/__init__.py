"""
Runtime: resolución de rutas de estado, política por defecto y lock del run.

El estado de hostplane NUNCA vive dentro del repo; el lock se crea en
/var/lib/hostplane/ salvo que HOSTPLANE_STATE_ROOT diga otra cosa.
"""

from hostplane.core.runtime.resolver import state_root, lock_path, pending_dir, default_policy
from hostplane.core.runtime.lock import run_lock, RunLocked

__all__ = ["state_root", "lock_path", "pending_dir", "default_policy", "run_lock", "RunLocked"]
