from datetime import date, datetime, timezone
from decimal import Decimal

from engine.models import (
    ESTADO_APROBADO,
    ESTADO_PENDIENTE,
    ESTADO_RECHAZADO,
    ROL_ADMIN,
    ROL_EMPLEADO,
    ROL_MANAGER,
    EntradaAprobacion,
    Gasto,
    Usuario,
)
from engine.store import RepositorioGastos

USUARIOS = [
    Usuario(id="user-1", nombre="Alice Admin", email="admin@innovate.com", rol=ROL_ADMIN),
    Usuario(id="user-2", nombre="Mark Manager", email="manager@innovate.com", rol=ROL_MANAGER, manager_id="user-1"),
    Usuario(id="user-3", nombre="Erin Employee", email="employee@innovate.com", rol=ROL_EMPLEADO, manager_id="user-2"),
    Usuario(id="user-4", nombre="Sam Employee", email="sam@innovate.com", rol=ROL_EMPLEADO, manager_id="user-2"),
]


def _momento(texto: str) -> datetime:
    return datetime.strptime(texto, "%Y-%m-%d").replace(tzinfo=timezone.utc)


GASTOS = [
    Gasto(
        id="exp-1", usuario_id="user-3", monto=Decimal("75.50"), moneda="USD",
        categoria="Meals & Entertainment", descripcion="Team Lunch at The Corner Bistro",
        fecha=date(2023, 10, 26), estado=ESTADO_APROBADO,
        historial=(
            EntradaAprobacion("user-2", ESTADO_APROBADO, "Looks good", _momento("2023-10-27")),
            EntradaAprobacion("user-1", ESTADO_APROBADO, "OK", _momento("2023-10-28")),
        ),
    ),
    Gasto(
        id="exp-2", usuario_id="user-4", monto=Decimal("1200"), moneda="EUR",
        categoria="Travel", descripcion="Flight to Berlin for conference",
        fecha=date(2023, 11, 15), estado=ESTADO_PENDIENTE,
    ),
    Gasto(
        id="exp-3", usuario_id="user-3", monto=Decimal("45.00"), moneda="GBP",
        categoria="Office Supplies", descripcion="New keyboards and mice",
        fecha=date(2023, 10, 20), estado=ESTADO_RECHAZADO,
        historial=(
            EntradaAprobacion("user-2", ESTADO_RECHAZADO, "This was not pre-approved.", _momento("2023-10-21")),
        ),
    ),
]


def repositorio_demo() -> RepositorioGastos:
    return RepositorioGastos(usuarios=USUARIOS, gastos=GASTOS)
