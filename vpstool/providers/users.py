"""
Provider de usuarios: UserExists.
"""

import grp
import logging
import pwd
from typing import List, Optional

from hostplane.core.errors import ApplyFailed
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from vpstool.core.tools import CommandRunner

logger = logging.getLogger(__name__)


def user_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
        return True
    except KeyError:
        return False


def missing_groups(name: str, groups: List[str]) -> List[str]:
    """Grupos suplementarios a los que el usuario aún no pertenece."""
    missing = []
    for group in groups:
        try:
            members = grp.getgrnam(group).gr_mem
        except KeyError:
            missing.append(group)
            continue
        if name not in members:
            missing.append(group)
    return missing


class UserHandler(BaseHandler):
    """
    Usuario con home y shell; contraseña y grupos solo al crearlo.

    La contraseña viaja por stdin a chpasswd, nunca en argv ni en logs.
    """

    name = "users"
    kinds = (ResourceKind.USER_EXISTS,)

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def probe(self, resource: Resource) -> ProbeResult:
        self.require(resource, "name")
        name = resource.param("name")
        if not user_exists(name):
            return ProbeResult(False, f"Usuario {name} no existe")
        missing = missing_groups(name, list(resource.param("groups") or ()))
        if missing:
            return ProbeResult(False, f"{name} fuera de: {', '.join(missing)}")
        return ProbeResult(True, f"Usuario {name} existe")

    def apply(self, resource: Resource) -> Optional[str]:
        self.require(resource, "name")
        name = resource.param("name")
        groups = list(resource.param("groups") or ())
        actions = []

        if not user_exists(name):
            shell = resource.param("shell") or "/bin/bash"
            self._run(["useradd", "-m", "-s", shell, name], f"useradd {name} falló")
            actions.append("creado")

            password = resource.param("password")
            if password:
                self._run(["chpasswd"], f"chpasswd {name} falló", input_text=f"{name}:{password}\n")
                actions.append("contraseña asignada")

        missing = missing_groups(name, groups)
        if missing:
            self._run(["usermod", "-aG", ",".join(missing), name], f"usermod {name} falló")
            actions.append(f"añadido a {', '.join(missing)}")

        return f"Usuario {name}: {', '.join(actions) or 'sin cambios'}"

    def _run(self, command: List[str], message: str, input_text: Optional[str] = None) -> None:
        result = self.runner(command, input_text=input_text)
        if not result.ok:
            raise ApplyFailed(message, output=result.output)
