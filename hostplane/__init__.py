"""
hostplane: reconciliador declarativo e idempotente para aprovisionar hosts.

El paquete `hostplane.core` contiene el motor puro; las implementaciones que
tocan el host (apt, systemd, ufw, archivos) viven en `vpstool`.
"""

__version__ = "1.0.0"
