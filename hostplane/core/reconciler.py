"""
Reconciler: probe → apply → verify sobre una lista ordenada de recursos.

Estados por recurso:
    Pending → Probing → {Satisfied | Applying → Verifying → {Applied | Failed}}
y Skipped cuando una dependencia no quedó bien, el run se canceló o la
política pide detenerse tras el primer fallo.

Modelo de ejecución: un solo hilo, applies estrictamente serializados en
orden de dependencias. La cancelación es cooperativa y se consulta entre
recursos, nunca a mitad de un comando externo.
"""

import logging
import subprocess
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from hostplane.core.errors import (
    DeclarationConflict,
    ErrorKind,
    ResourceError,
    describe,
)
from hostplane.core.infra.contracts import HandlerRegistry, ResourceHandler
from hostplane.core.resources.models import (
    ErrorDetail,
    OutcomeStatus,
    ProbeResult,
    ReconcileOutcome,
    Resource,
    RunPolicy,
    RunReport,
)
from hostplane.core.resources.validator import validate_plan

logger = logging.getLogger(__name__)

_OK = (OutcomeStatus.SATISFIED, OutcomeStatus.APPLIED)

# Errores de host que un handler puede dejar escapar (permisos, subprocess)
_HOST_ERRORS = (OSError, subprocess.SubprocessError, UnicodeDecodeError)


class Reconciler:
    """
    Motor de reconciliación.

    El Reconciler es dueño de la secuencia de outcomes de su run; los
    recursos son entradas de solo lectura.
    """

    def __init__(
        self,
        handlers: Union[HandlerRegistry, Iterable[ResourceHandler]],
        policy: Optional[RunPolicy] = None,
    ):
        if not isinstance(handlers, HandlerRegistry):
            handlers = HandlerRegistry(handlers)
        self.handlers = handlers
        self.policy = policy or RunPolicy()

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------

    def validate(self, resources: Sequence[Resource]) -> List[Resource]:
        """
        Valida el plan y devuelve el orden de ejecución.

        Lanza DeclarationConflict / UnknownDependency / DependencyCycle; en ese
        caso no se ha tocado el host.
        """
        ordered = validate_plan(resources)
        missing = sorted({r.kind.value for r in ordered if r.kind not in self.handlers})
        if missing:
            raise DeclarationConflict(
                ", ".join(r.key for r in ordered if r.kind.value in missing),
                f"sin handler para: {', '.join(missing)}",
            )
        return ordered

    def run(
        self,
        resources: Sequence[Resource],
        cancel: Optional[threading.Event] = None,
    ) -> RunReport:
        """
        Ejecuta el plan completo y devuelve el RunReport.

        Los errores de recurso nunca escapan de aquí: quedan en el outcome.
        """
        ordered = self.validate(resources)
        report = RunReport()
        status: Dict[str, OutcomeStatus] = {}
        halted_by: Optional[str] = None

        logger.info("Reconciliando %d recursos", len(ordered))

        for resource in ordered:
            if cancel is not None and cancel.is_set():
                outcome = self._skipped(resource, ErrorKind.CANCELLED, "Run cancelado")
            elif halted_by is not None:
                outcome = self._skipped(
                    resource, ErrorKind.HALTED, f"Run detenido tras fallo de '{halted_by}'", halted_by
                )
            else:
                blocking = self._blocking_dependency(resource, status)
                if blocking is not None:
                    outcome = self._skipped(
                        resource,
                        ErrorKind.DEPENDENCY_FAILED,
                        f"Dependencia '{blocking}' no quedó satisfecha",
                        blocking,
                    )
                else:
                    outcome = self._reconcile_one(resource)

            status[resource.key] = outcome.status
            report.outcomes.append(outcome)

            if outcome.status == OutcomeStatus.FAILED and self.policy.halt_on_first_failure:
                halted_by = resource.key

        satisfied, applied, failed, skipped = report.summary()
        logger.info(
            "Run terminado: %d satisfechos, %d aplicados, %d fallidos, %d omitidos",
            satisfied, applied, failed, skipped,
        )
        return report

    def plan(self, resources: Sequence[Resource]) -> List[Tuple[Resource, ProbeResult]]:
        """
        Dry run: solo probes, en orden de ejecución. No aplica nada.

        Un probe que falla se reporta como no satisfecho con el error en el
        detail.
        """
        ordered = self.validate(resources)
        results: List[Tuple[Resource, ProbeResult]] = []
        for resource in ordered:
            try:
                result = self._handler(resource).probe(resource)
            except ResourceError as e:
                result = ProbeResult(False, f"{ErrorKind.PROBE_FAILED.value}: {describe(e)}")
            except _HOST_ERRORS as e:
                result = ProbeResult(False, f"{ErrorKind.PROBE_FAILED.value}: {e}")
            results.append((resource, result))
        return results

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _handler(self, resource: Resource) -> ResourceHandler:
        handler = self.handlers.get(resource.kind)
        if handler is None:
            # validate() ya lo garantiza; esto solo protege usos directos
            raise LookupError(f"Sin handler para {resource.kind.value}")
        return handler

    @staticmethod
    def _blocking_dependency(resource: Resource, status: Dict[str, OutcomeStatus]) -> Optional[str]:
        for dep in sorted(resource.depends_on):
            if status.get(dep) not in _OK:
                return dep
        return None

    def _reconcile_one(self, resource: Resource) -> ReconcileOutcome:
        handler = self._handler(resource)

        # Probing
        logger.debug("Probe %s", resource.key)
        probed = self._probe(handler, resource)
        if isinstance(probed, ReconcileOutcome):
            return probed
        if probed.satisfied:
            logger.info("✔ %s ya satisfecho", resource.key)
            return ReconcileOutcome(resource.key, OutcomeStatus.SATISFIED, probed.detail)

        # Applying
        logger.info("Aplicando %s (%s)", resource.key, probed.detail or resource.kind.value)
        try:
            applied_detail = handler.apply(resource)
        except ResourceError as e:
            logger.error("✘ %s: %s", resource.key, describe(e))
            return self._failed(resource, e.kind, describe(e), output=e.output)
        except _HOST_ERRORS as e:
            logger.error("✘ %s: %s", resource.key, e)
            return self._failed(resource, ErrorKind.APPLY_FAILED, str(e))

        # Verifying
        verified = self._probe(handler, resource)
        if isinstance(verified, ReconcileOutcome):
            return verified
        if not verified.satisfied:
            logger.error("✘ %s: apply terminó bien pero el host no coincide", resource.key)
            return self._failed(
                resource,
                ErrorKind.VERIFICATION_MISMATCH,
                f"Apply terminó bien pero el probe sigue sin satisfacerse: {verified.detail}",
            )

        logger.info("✔ %s aplicado", resource.key)
        return ReconcileOutcome(
            resource.key, OutcomeStatus.APPLIED, applied_detail or verified.detail
        )

    def _probe(self, handler: ResourceHandler, resource: Resource) -> Union[ProbeResult, ReconcileOutcome]:
        try:
            return handler.probe(resource)
        except ResourceError as e:
            kind = ErrorKind.TIMEOUT if e.kind == ErrorKind.TIMEOUT else ErrorKind.PROBE_FAILED
            logger.error("✘ probe %s: %s", resource.key, describe(e))
            return self._failed(resource, kind, describe(e), output=e.output)
        except _HOST_ERRORS as e:
            logger.error("✘ probe %s: %s", resource.key, e)
            return self._failed(resource, ErrorKind.PROBE_FAILED, str(e))

    @staticmethod
    def _failed(resource: Resource, kind: ErrorKind, message: str, output: str = "") -> ReconcileOutcome:
        return ReconcileOutcome(
            resource.key,
            OutcomeStatus.FAILED,
            message,
            ErrorDetail(kind=kind, message=message, output=output),
        )

    @staticmethod
    def _skipped(
        resource: Resource, kind: ErrorKind, message: str, blocking_key: Optional[str] = None
    ) -> ReconcileOutcome:
        logger.warning("⚠ %s omitido: %s", resource.key, message)
        return ReconcileOutcome(
            resource.key,
            OutcomeStatus.SKIPPED,
            message,
            ErrorDetail(kind=kind, message=message, blocking_key=blocking_key),
        )


def reconcile(
    resources: Sequence[Resource],
    handlers: Union[HandlerRegistry, Iterable[ResourceHandler]],
    policy: Optional[RunPolicy] = None,
    cancel: Optional[threading.Event] = None,
) -> RunReport:
    """Atajo: Reconciler(handlers, policy).run(resources, cancel)."""
    return Reconciler(handlers, policy).run(resources, cancel=cancel)
