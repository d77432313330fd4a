"""
Motor del flujo de aprobación multinivel.

El flujo es una máquina de estados con etapas nombradas (una por rol aprobador).
El estado de un gasto se deriva de su historial:
    - sin aprobaciones -> debe actuar la primera etapa
    - última aprobación en la etapa i -> debe actuar la etapa i+1
    - última aprobación en la etapa final con estado APROBADO -> COMPLETADO (terminal)
    - cualquier rechazo -> RECHAZADO (terminal)
    - aprobador desconocido, rol fuera del flujo o estado que no coincide con el historial -> INCONSISTENTE (nadie puede actuar)
Nada en este módulo hace I/O ni guarda estado: el historial solo se extiende devolviendo un Gasto nuevo.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from engine import policy
from engine.errors import AccionNoAutorizada
from engine.models import (
    DECISIONES,
    ESTADO_APROBADO,
    ESTADO_PENDIENTE,
    ESTADO_RECHAZADO,
    ROL_MANAGER,
    EntradaAprobacion,
    Gasto,
    Usuario,
)

logger = logging.getLogger(__name__)

# Tipos de estado derivado del flujo
EN_ETAPA = "EN_ETAPA"
COMPLETADO = "COMPLETADO"
RECHAZADO = "RECHAZADO"
INCONSISTENTE = "INCONSISTENTE"

# Estado visible (solo proyección para la UI, nunca se almacena)
VISIBLE_PENDIENTE_SIGUIENTE_NIVEL = "PENDIENTE_SIGUIENTE_NIVEL"


@dataclass(frozen=True)
class Etapa:
    nombre: str
    rol: str
    indice: int
    siguiente: Optional["Etapa"] = None

    @property
    def es_final(self) -> bool:
        return self.siguiente is None


class FlujoAprobacion:
    """Secuencia fija de etapas. Se construye una vez a partir de la lista de roles de la política."""

    def __init__(self, roles: Iterable[str]):
        roles = list(roles)
        if not roles:
            raise ValueError("El flujo de aprobación necesita al menos una etapa.")
        if len(set(roles)) != len(roles):
            raise ValueError(f"Roles repetidos en el flujo de aprobación: {roles}")

        # Se encadenan desde la última etapa hacia la primera
        etapas = []
        siguiente = None
        for indice in range(len(roles) - 1, -1, -1):
            siguiente = Etapa(nombre=f"APROBACION_{roles[indice]}", rol=roles[indice], indice=indice, siguiente=siguiente)
            etapas.insert(0, siguiente)

        self.etapas = tuple(etapas)
        self._por_rol = {etapa.rol: etapa for etapa in self.etapas}

    @property
    def inicial(self) -> Etapa:
        return self.etapas[0]

    @property
    def roles(self):
        return [etapa.rol for etapa in self.etapas]

    def etapa_de_rol(self, rol: str) -> Optional[Etapa]:
        return self._por_rol.get(rol)

    def __len__(self):
        return len(self.etapas)

    def __repr__(self):
        return f"FlujoAprobacion({' -> '.join(self.roles)})"


FLUJO_POR_DEFECTO = FlujoAprobacion(policy.POLITICA["flujo_aprobacion"])


@dataclass(frozen=True)
class EstadoFlujo:
    tipo: str
    etapa: Optional[Etapa] = None  # etapa que debe actuar (solo EN_ETAPA)
    motivo: str = ""

    @property
    def es_terminal(self) -> bool:
        return self.tipo in (COMPLETADO, RECHAZADO)

    @property
    def rol_requerido(self) -> Optional[str]:
        return self.etapa.rol if self.etapa is not None else None


def derivar_estado(
    gasto: Gasto,
    usuarios: Mapping[str, Usuario],
    flujo: FlujoAprobacion = FLUJO_POR_DEFECTO,
) -> EstadoFlujo:
    """
    Calcula en qué punto del flujo está el gasto a partir de su estado y su historial.
    'usuarios' se usa para conocer el rol de cada aprobador del historial.
    """
    if gasto.estado == ESTADO_RECHAZADO or any(e.decision == ESTADO_RECHAZADO for e in gasto.historial):
        return EstadoFlujo(RECHAZADO)

    # La última aprobación (buscando desde el final) define la etapa alcanzada
    ultima = next((e for e in reversed(gasto.historial) if e.decision == ESTADO_APROBADO), None)
    if ultima is None:
        if gasto.estado == ESTADO_APROBADO:
            return _inconsistente(gasto, "estado APROBADO sin aprobaciones en el historial")
        return EstadoFlujo(EN_ETAPA, etapa=flujo.inicial)

    aprobador = usuarios.get(ultima.aprobador_id)
    if aprobador is None:
        return _inconsistente(gasto, f"aprobador desconocido {ultima.aprobador_id}")

    etapa = flujo.etapa_de_rol(aprobador.rol)
    if etapa is None:
        return _inconsistente(gasto, f"el rol {aprobador.rol} de {aprobador.id} no pertenece a {flujo!r}")

    if etapa.es_final:
        if gasto.estado == ESTADO_APROBADO:
            return EstadoFlujo(COMPLETADO)
        # La etapa final ya aprobó pero el gasto no quedó cerrado: nadie más puede actuar
        return _inconsistente(gasto, f"estado {gasto.estado} pero la etapa final {etapa.nombre} ya aprobó")
    if gasto.estado == ESTADO_APROBADO:
        return _inconsistente(gasto, f"estado APROBADO pero la última aprobación es de la etapa {etapa.nombre}")
    return EstadoFlujo(EN_ETAPA, etapa=etapa.siguiente)


def _inconsistente(gasto: Gasto, motivo: str) -> EstadoFlujo:
    # Requiere revisión manual: el flujo no avanza solo
    logger.warning("Gasto %s en estado inconsistente: %s", gasto.id, motivo)
    return EstadoFlujo(INCONSISTENTE, motivo=motivo)


def siguiente_rol(
    gasto: Gasto,
    usuarios: Mapping[str, Usuario],
    flujo: FlujoAprobacion = FLUJO_POR_DEFECTO,
) -> Optional[str]:
    """Rol que debe actuar a continuación, o None si nadie puede actuar."""
    if gasto.estado != ESTADO_PENDIENTE:
        return None
    return derivar_estado(gasto, usuarios, flujo).rol_requerido


def _motivo_bloqueo(
    gasto: Gasto,
    actor: Usuario,
    usuarios: Mapping[str, Usuario],
    flujo: FlujoAprobacion,
) -> Optional[str]:
    if gasto.estado != ESTADO_PENDIENTE:
        return f"el gasto está {gasto.estado}"

    estado = derivar_estado(gasto, usuarios, flujo)
    if estado.tipo != EN_ETAPA:
        return f"el flujo está {estado.tipo}" + (f" ({estado.motivo})" if estado.motivo else "")

    if actor.rol != estado.rol_requerido:
        return f"se requiere el rol {estado.rol_requerido}, el actor es {actor.rol}"

    # Etapa de manager: solo el manager directo del empleado
    if estado.rol_requerido == ROL_MANAGER:
        empleado = usuarios.get(gasto.usuario_id)
        if empleado is None or empleado.manager_id != actor.id:
            return "solo el manager directo del empleado puede aprobar esta etapa"

    return None


def puede_actuar(
    gasto: Gasto,
    actor: Usuario,
    usuarios: Mapping[str, Usuario],
    flujo: FlujoAprobacion = FLUJO_POR_DEFECTO,
) -> bool:
    return _motivo_bloqueo(gasto, actor, usuarios, flujo) is None


def aplicar_decision(
    gasto: Gasto,
    decision: str,
    comentario: str,
    aprobador: Usuario,
    usuarios: Mapping[str, Usuario],
    flujo: FlujoAprobacion = FLUJO_POR_DEFECTO,
    ahora: Optional[datetime] = None,
) -> Gasto:
    """
    Registra la decisión del aprobador y devuelve el gasto con el nuevo estado.
    Vuelve a verificar puede_actuar: si el actor no está autorizado se lanza AccionNoAutorizada
    y el gasto queda intacto. Cada llamada agrega una entrada al historial (no es idempotente).
    La aprobación de la etapa final cierra el gasto como APROBADO; las demás lo dejan PENDIENTE.
    """
    if decision not in DECISIONES:
        raise ValueError(f"Decisión inválida: {decision!r}. Se espera una de {DECISIONES}")

    motivo = _motivo_bloqueo(gasto, aprobador, usuarios, flujo)
    if motivo is not None:
        raise AccionNoAutorizada(gasto.id, aprobador.id, motivo)
    etapa = derivar_estado(gasto, usuarios, flujo).etapa

    entrada = EntradaAprobacion(
        aprobador_id=aprobador.id,
        decision=decision,
        comentario=comentario or "",
        fecha_hora=ahora or datetime.now(timezone.utc),
    )
    nuevo = replace(gasto, historial=gasto.historial + (entrada,))

    if decision == ESTADO_RECHAZADO:
        nuevo_estado = ESTADO_RECHAZADO
    elif etapa.es_final:
        nuevo_estado = ESTADO_APROBADO
    else:
        nuevo_estado = ESTADO_PENDIENTE  # queda esperando el siguiente nivel

    logger.info("Gasto %s: %s por %s (%s) -> %s", gasto.id, decision, aprobador.id, aprobador.rol, nuevo_estado)
    return replace(nuevo, estado=nuevo_estado)


def estado_visible(gasto: Gasto) -> str:
    """Distingue 'pendiente' de 'pendiente con al menos una aprobación' (esperando el siguiente nivel)."""
    if gasto.estado == ESTADO_PENDIENTE and any(e.decision == ESTADO_APROBADO for e in gasto.historial):
        return VISIBLE_PENDIENTE_SIGUIENTE_NIVEL
    return gasto.estado
