"""
Datos del sistema que las recetas necesitan al construir el plan
"""

from pathlib import Path
from typing import Dict, Optional

OS_RELEASE = Path("/etc/os-release")
DEBIAN_VERSION = Path("/etc/debian_version")

DEBIAN_CODENAMES = {
    "11": "bullseye",
    "12": "bookworm",
    "13": "trixie",
}


def read_os_release(path: Path = OS_RELEASE) -> Dict[str, str]:
    """Parsea /etc/os-release (KEY=valor, comillas opcionales)."""
    data: Dict[str, str] = {}
    try:
        text = path.read_text()
    except FileNotFoundError:
        return data
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


def debian_version(os_release: Path = OS_RELEASE, debian_version_file: Path = DEBIAN_VERSION) -> Optional[str]:
    """Versión mayor de Debian ("12") o None si no se puede determinar."""
    version = read_os_release(os_release).get("VERSION_ID")
    if not version and debian_version_file.exists():
        version = debian_version_file.read_text().strip()
    if not version:
        return None
    return version.split(".")[0]


def debian_codename(os_release: Path = OS_RELEASE) -> Optional[str]:
    data = read_os_release(os_release)
    codename = data.get("VERSION_CODENAME")
    if codename:
        return codename
    version = debian_version(os_release)
    return DEBIAN_CODENAMES.get(version or "")
