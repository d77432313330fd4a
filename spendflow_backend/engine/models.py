from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

# Roles de usuario
ROL_EMPLEADO = "EMPLEADO"
ROL_MANAGER = "MANAGER"
ROL_ADMIN = "ADMIN"
ROLES = (ROL_EMPLEADO, ROL_MANAGER, ROL_ADMIN)

# Estados de un gasto (los únicos que se almacenan)
ESTADO_PENDIENTE = "PENDIENTE"
ESTADO_APROBADO = "APROBADO"
ESTADO_RECHAZADO = "RECHAZADO"
ESTADOS = (ESTADO_PENDIENTE, ESTADO_APROBADO, ESTADO_RECHAZADO)

# Decisiones posibles de un aprobador
DECISIONES = (ESTADO_APROBADO, ESTADO_RECHAZADO)


@dataclass
class Usuario:
    id: str
    nombre: str
    email: str
    rol: str
    manager_id: Optional[str] = None  # referencia al manager directo (solo empleados)


@dataclass(frozen=True)
class EntradaAprobacion:
    aprobador_id: str
    decision: str       # APROBADO / RECHAZADO
    comentario: str
    fecha_hora: datetime


@dataclass(frozen=True)
class Gasto:
    id: str
    usuario_id: str     # empleado que reporta el gasto
    monto: Decimal      # valor del gasto en su moneda original
    moneda: str         # currency / moneda (e.g., "USD", "EUR", "GBP")
    categoria: str
    descripcion: str
    fecha: date         # fecha del gasto (no de la aprobación)
    estado: str = ESTADO_PENDIENTE
    # El historial es una tupla: solo se extiende creando un Gasto nuevo
    historial: Tuple[EntradaAprobacion, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Empresa:
    id: str
    nombre: str
    moneda_base: str
