import threading
from datetime import date
from decimal import Decimal

import requests

from engine.models import ROL_ADMIN, ROL_EMPLEADO, ROL_MANAGER, Usuario

TABLAS = {
    "EUR": {"USD": Decimal("1.1"), "GBP": Decimal("0.85")},
    "GBP": {"USD": Decimal("1.25"), "EUR": Decimal("1.17")},
    "USD": {"EUR": Decimal("0.9"), "GBP": Decimal("0.8")},
    "JPY": {"EUR": Decimal("0.006")},  # sin USD
}


class FuenteFalsa:
    """Reemplaza la API de tasas: cuenta consultas por moneda y falla para monedas desconocidas."""

    def __init__(self, tablas=None, al_consultar=None):
        self.tablas = TABLAS if tablas is None else tablas
        self.al_consultar = al_consultar
        self.llamadas = []
        self._lock = threading.Lock()

    def __call__(self, moneda, timeout):
        with self._lock:
            self.llamadas.append(moneda)
        if self.al_consultar is not None:
            self.al_consultar(moneda)
        if moneda not in self.tablas:
            raise requests.ConnectionError(f"sin datos para {moneda}")
        return dict(self.tablas[moneda])

    def consultas_por(self, moneda):
        return self.llamadas.count(moneda)


class Reloj:
    def __init__(self, inicio=1000.0):
        self.ahora = inicio

    def __call__(self):
        return self.ahora

    def avanzar(self, segundos):
        self.ahora += segundos


def restar_meses(hoy: date, meses: int) -> date:
    anio, mes = hoy.year, hoy.month - meses
    while mes <= 0:
        anio, mes = anio - 1, mes + 12
    return date(anio, mes, 1)


ADMIN = Usuario(id="u-admin", nombre="Ana Admin", email="ana@corp.test", rol=ROL_ADMIN)
MANAGER = Usuario(id="u-mgr", nombre="Mario Manager", email="mario@corp.test", rol=ROL_MANAGER)
OTRO_MANAGER = Usuario(id="u-mgr2", nombre="Marta Manager", email="marta@corp.test", rol=ROL_MANAGER)
EMPLEADO = Usuario(id="u-emp", nombre="Elena Empleada", email="elena@corp.test", rol=ROL_EMPLEADO, manager_id="u-mgr")
OTRO_EMPLEADO = Usuario(
    id="u-emp2", nombre="Pedro Empleado", email="pedro@corp.test", rol=ROL_EMPLEADO, manager_id="u-mgr2"
)
USUARIOS = [ADMIN, MANAGER, OTRO_MANAGER, EMPLEADO, OTRO_EMPLEADO]
POR_ID = {u.id: u for u in USUARIOS}
