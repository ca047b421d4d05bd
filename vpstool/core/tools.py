"""
Módulo Tools - Ejecución de comandos y escritura atómica compartidas por los handlers
"""

import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from hostplane.core.errors import CommandNotFound, CommandTimeout

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Resultado de un comando externo"""
    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout + stderr, recortado para diagnósticos"""
        text = "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)
        return text[-2000:]


class CommandRunner:
    """
    Ejecuta comandos del sistema con un timeout por comando.

    - Timeout → CommandTimeout (distinto de un código de salida no cero).
    - Binario inexistente → CommandNotFound.
    - Código no cero → se devuelve en CommandResult; decide quien llama.
    """

    def __init__(self, timeout: float = 300.0, env: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.env = env

    def __call__(
        self,
        command: Sequence[str],
        input_text: Optional[str] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        secret: bool = False,
    ) -> CommandResult:
        return self.run(command, input_text=input_text, cwd=cwd, env=env, timeout=timeout, secret=secret)

    def run(
        self,
        command: Sequence[str],
        input_text: Optional[str] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        secret: bool = False,
    ) -> CommandResult:
        command = [str(c) for c in command]
        # Con secret=True los argumentos no aparecen en logs ni en errores
        shown = [command[0], "****"] if secret and len(command) > 1 else command
        effective_timeout = timeout or self.timeout

        merged_env = None
        if self.env or env:
            merged_env = dict(os.environ)
            merged_env.update(self.env or {})
            merged_env.update(env or {})

        # Nunca se registra input_text: puede llevar contraseñas (chpasswd)
        logger.debug("$ %s", " ".join(shown))
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
                env=merged_env,
                check=False
            )
        except subprocess.TimeoutExpired:
            raise CommandTimeout(shown, effective_timeout)
        except FileNotFoundError:
            raise CommandNotFound(command[0])

        return CommandResult(command, result.returncode, result.stdout or "", result.stderr or "")


def which(binary: str) -> Optional[str]:
    """Ruta del binario o None (sin lanzar procesos)."""
    return shutil.which(binary)


def write_atomic(path: Path, content: Union[str, bytes], mode: Optional[int] = None) -> None:
    """
    Escribe un archivo de forma atómica

    Escribe en un temporal del mismo directorio, fsync y os.replace sobre el
    destino. Si algo falla antes del rename, el destino queda intacto y el
    temporal se elimina.

    Args:
        path: Ruta destino
        content: Contenido (str se codifica en UTF-8)
        mode: Permisos; por defecto se conservan los del archivo previo
    """
    data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    path.parent.mkdir(parents=True, exist_ok=True)

    previous = None
    if path.exists():
        previous = path.stat()

    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        elif previous is not None:
            os.chmod(tmp, previous.st_mode & 0o7777)
        else:
            os.chmod(tmp, 0o644)
        if previous is not None and os.geteuid() == 0:
            os.chown(tmp, previous.st_uid, previous.st_gid)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)
