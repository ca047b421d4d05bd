"""
Providers: implementaciones de probe/apply que tocan el host real.

default_registry() construye el registro con un CommandRunner compartido que
aplica el timeout por comando de la política del run.
"""

from hostplane.core.infra.contracts import HandlerRegistry
from hostplane.core.resources.models import RunPolicy
from vpstool.core.tools import CommandRunner
from vpstool.providers.commands import GuardedCommandHandler
from vpstool.providers.files import FileHandler
from vpstool.providers.firewall import UfwHandler
from vpstool.providers.packages import AptPackageHandler
from vpstool.providers.services import SystemdHandler
from vpstool.providers.users import UserHandler


def default_registry(policy: RunPolicy, runner: CommandRunner = None) -> HandlerRegistry:
    """Registro kind -> handler para un host Debian (apt + systemd + ufw)."""
    runner = runner or CommandRunner(timeout=policy.per_command_timeout)
    return HandlerRegistry([
        AptPackageHandler(runner),
        FileHandler(runner),
        SystemdHandler(runner),
        UfwHandler(runner),
        UserHandler(runner),
        GuardedCommandHandler(runner),
    ])


__all__ = [
    "default_registry",
    "AptPackageHandler",
    "FileHandler",
    "SystemdHandler",
    "UfwHandler",
    "UserHandler",
    "GuardedCommandHandler",
]
