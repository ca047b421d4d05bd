"""
Provider de archivos: LinePresentInFile y FileContentExact.

- LinePresentInFile: la primera línea que coincide con el patrón se
  reemplaza en el sitio y las siguientes que coinciden se eliminan (una sola
  ocurrencia, como sshd_config espera); si ninguna coincide, se añade al
  final. Satisfecho solo si hay exactamente una línea que coincide y es la
  deseada.
- FileContentExact: satisfecho si el contenido es idéntico byte a byte, o si
  existe alguna de las rutas de `unless_exists` (se evalúa al sondear, no al
  construir el plan).

Ambos escriben con write_atomic y, si hubo cambio, ejecutan post_commands
(daemon-reload, sysctl -p, nginx -t...). Antes de ejecutarlos se deja una
marca en pending_dir(); mientras exista, el recurso no está satisfecho y el
siguiente run los reintenta aunque el archivo ya tenga el contenido deseado.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import List, Optional, Pattern, Tuple

from hostplane.core.errors import ApplyFailed, ProbeFailed
from hostplane.core.infra.base import BaseHandler
from hostplane.core.resources.models import ProbeResult, Resource, ResourceKind
from hostplane.core.runtime.resolver import pending_dir
from vpstool.core.tools import CommandRunner, write_atomic

logger = logging.getLogger(__name__)


def _compile(resource: Resource) -> Pattern:
    pattern = resource.param("pattern")
    line = resource.param("line")
    if pattern:
        try:
            return re.compile(pattern)
        except re.error as e:
            raise ProbeFailed(f"{resource.key}: patrón inválido: {e}")
    return re.compile(r"^" + re.escape(line) + r"$")


def _read(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except PermissionError as e:
        raise ProbeFailed(f"Sin permisos para leer {path}: {e}")


def _split_lines(text: str) -> List[str]:
    return text.splitlines()


def merge_line(text: str, pattern: Pattern, line: str) -> Tuple[str, str]:
    """
    Devuelve (nuevo_texto, acción) aplicando la política replace-or-append.

    Solo queda una ocurrencia: la primera coincidencia se reemplaza y las
    demás se quitan. Las líneas se comparan sin el salto de línea final.
    """
    lines = _split_lines(text)
    matched = False
    out: List[str] = []
    for current in lines:
        if not pattern.search(current):
            out.append(current)
        elif not matched:
            matched = True
            out.append(line)
    if matched:
        action = "reemplazada"
    else:
        out.append(line)
        action = "añadida"
    return "\n".join(out) + "\n", action


class FileHandler(BaseHandler):
    """Archivos y líneas dentro de archivos"""

    name = "files"
    kinds = (ResourceKind.LINE_PRESENT_IN_FILE, ResourceKind.FILE_CONTENT_EXACT)

    def __init__(self, runner: Optional[CommandRunner] = None, pending: Optional[Path] = None):
        self.runner = runner
        self.pending = pending

    # -- marcas de post_commands -------------------------------------------

    def _marker(self, resource: Resource) -> Path:
        root = self.pending if self.pending is not None else pending_dir()
        digest = hashlib.sha256(resource.key.encode("utf-8")).hexdigest()[:24]
        return Path(root) / digest

    def _has_pending(self, resource: Resource) -> bool:
        return bool(resource.param("post_commands")) and self._marker(resource).exists()

    # -- estado actual ---------------------------------------------------

    def probe(self, resource: Resource) -> ProbeResult:
        if resource.kind == ResourceKind.FILE_CONTENT_EXACT:
            result = self._probe_content(resource)
        else:
            result = self._probe_line(resource)
        if result.satisfied and self._has_pending(resource):
            return ProbeResult(False, "post_commands pendientes del run anterior")
        return result

    def _probe_line(self, resource: Resource) -> ProbeResult:
        self.require(resource, "path", "line")
        path = Path(resource.param("path"))
        raw = _read(path)
        if raw is None:
            return ProbeResult(False, f"{path} no existe")

        pattern = _compile(resource)
        desired = resource.param("line")
        matches = [l for l in _split_lines(raw.decode("utf-8")) if pattern.search(l)]
        if not matches:
            return ProbeResult(False, "Línea ausente")
        if any(l != desired for l in matches):
            return ProbeResult(False, f"Línea distinta: {matches[0]!r}")
        if len(matches) > 1:
            return ProbeResult(False, f"Línea repetida ({len(matches)} veces)")
        return ProbeResult(True, "Línea presente")

    def _probe_content(self, resource: Resource) -> ProbeResult:
        self.require(resource, "path")
        for other in resource.param("unless_exists") or ():
            if Path(other).exists():
                return ProbeResult(True, f"Ya existe {other}")
        path = Path(resource.param("path"))
        raw = _read(path)
        if raw is None:
            return ProbeResult(False, f"{path} no existe")
        if not resource.param("replace", True):
            return ProbeResult(True, "Existe (no se reemplaza)")
        if raw != self._desired_bytes(resource):
            return ProbeResult(False, "Contenido distinto")
        mode = resource.param("mode")
        if mode is not None and (path.stat().st_mode & 0o7777) != mode:
            return ProbeResult(False, f"Permisos distintos ({oct(path.stat().st_mode & 0o7777)})")
        return ProbeResult(True, "Contenido idéntico")

    @staticmethod
    def _desired_bytes(resource: Resource) -> bytes:
        content = resource.param("content", "")
        return content.encode("utf-8") if isinstance(content, str) else bytes(content)

    # -- apply -----------------------------------------------------------

    def apply(self, resource: Resource) -> Optional[str]:
        if resource.kind == ResourceKind.FILE_CONTENT_EXACT:
            detail = self._apply_content(resource)
        else:
            detail = self._apply_line(resource)
        self._post_commands(resource)
        return detail

    def _apply_line(self, resource: Resource) -> str:
        self.require(resource, "path", "line")
        path = Path(resource.param("path"))
        raw = _read(path)
        if raw is None:
            if not resource.param("create", True):
                raise ApplyFailed(f"{path} no existe y create=false")
            raw = b""

        pattern = _compile(resource)
        text = raw.decode("utf-8")
        if not resource.param("append", True) and not any(pattern.search(l) for l in _split_lines(text)):
            raise ApplyFailed(f"Ninguna línea de {path} coincide y append=false")
        merged, action = merge_line(text, pattern, resource.param("line"))
        if merged == text:
            return f"Línea ya presente en {path}"
        write_atomic(path, merged)
        return f"Línea {action} en {path}"

    def _apply_content(self, resource: Resource) -> str:
        self.require(resource, "path")
        path = Path(resource.param("path"))
        desired = self._desired_bytes(resource)
        mode = resource.param("mode")
        raw = _read(path)
        if raw is not None and not resource.param("replace", True):
            return f"{path} ya existe (no se reemplaza)"
        if raw == desired and (mode is None or (path.stat().st_mode & 0o7777) == mode):
            return f"{path} sin cambios"
        write_atomic(path, desired, mode=mode)
        return f"Escrito {path}"

    def _post_commands(self, resource: Resource) -> None:
        commands = resource.param("post_commands") or ()
        if not commands:
            return
        if self.runner is None:
            raise ApplyFailed(f"{resource.key}: post_commands sin CommandRunner")
        marker = self._marker(resource)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(resource.key + "\n")
        for command in commands:
            result = self.runner(list(command))
            if not result.ok:
                logger.warning("⚠ %s: post_command pendiente (%s)", resource.key, " ".join(command))
                raise ApplyFailed(f"Falló: {' '.join(command)}", output=result.output)
        marker.unlink()
