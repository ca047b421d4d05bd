"""
Contratos y base para handlers de recursos.

Los handlers (apt, archivos, systemd, ufw, usuarios) implementan estos
contratos; el core no depende de ningún handler concreto.
"""

from hostplane.core.infra.contracts import ResourceHandler, HandlerRegistry
from hostplane.core.infra.base import BaseHandler

__all__ = ["ResourceHandler", "HandlerRegistry", "BaseHandler"]
