"""
Agregados de gasto para dashboards y reportes.

Recibe gastos ya filtrados según el alcance del usuario (propios, equipo o toda la empresa)
y los normaliza a una sola moneda. Solo los gastos APROBADOS suman dinero; los que no se
pueden convertir quedan fuera de los totales y del promedio, pero siguen contando como envíos.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Tuple

from engine import policy
from engine.conversion import Normalizador
from engine.models import ESTADO_APROBADO, ESTADOS, Gasto

logger = logging.getLogger(__name__)

CENTAVOS = Decimal("0.01")


@dataclass
class ReporteGastos:
    moneda: str
    total: Decimal = Decimal(0)
    promedio: Decimal = Decimal(0)
    total_gastos: int = 0       # todos los gastos recibidos (envíos)
    aprobados: int = 0
    convertidos: int = 0        # aprobados con conversión válida (denominador del promedio)
    no_convertibles: List[str] = field(default_factory=list)
    por_estado: Dict[str, int] = field(default_factory=dict)
    por_categoria: List[Tuple[str, Decimal]] = field(default_factory=list)
    por_mes: List[Tuple[str, Decimal]] = field(default_factory=list)
    top_empleados: List[Tuple[str, Decimal]] = field(default_factory=list)

    def como_dict(self) -> dict:
        def fmt(valor: Decimal) -> str:
            return str(valor.quantize(CENTAVOS))

        return {
            "moneda": self.moneda,
            "total": fmt(self.total),
            "promedio": fmt(self.promedio),
            "total_gastos": self.total_gastos,
            "aprobados": self.aprobados,
            "convertidos": self.convertidos,
            "no_convertibles": list(self.no_convertibles),
            "por_estado": dict(self.por_estado),
            "por_categoria": [{"categoria": c, "total": fmt(t)} for c, t in self.por_categoria],
            "por_mes": [{"mes": m, "total": fmt(t)} for m, t in self.por_mes],
            "top_empleados": [{"usuario_id": u, "total": fmt(t)} for u, t in self.top_empleados],
        }


def meses_recientes(hoy: date, cantidad: int) -> List[str]:
    """Claves 'YYYY-MM' de los últimos 'cantidad' meses calendario (incluye el actual), en orden cronológico."""
    anio, mes = hoy.year, hoy.month
    claves = []
    for _ in range(cantidad):
        claves.append(f"{anio:04d}-{mes:02d}")
        mes -= 1
        if mes == 0:
            anio, mes = anio - 1, 12
    return claves[::-1]


def _acumular(montos: Iterable[Tuple[Gasto, Decimal]], clave: Callable[[Gasto], str]) -> "OrderedDict[str, Decimal]":
    totales: "OrderedDict[str, Decimal]" = OrderedDict()
    for gasto, monto in montos:
        k = clave(gasto)
        totales[k] = totales.get(k, Decimal(0)) + monto
    return totales


def _ordenar_desc(totales: Dict[str, Decimal]) -> List[Tuple[str, Decimal]]:
    # sorted es estable: con totales iguales se conserva el orden de aparición
    return sorted(totales.items(), key=lambda kv: kv[1], reverse=True)


def construir_reporte(
    gastos: Iterable[Gasto],
    normalizador: Normalizador,
    moneda: str,
    hoy: date = None,
    cancelado: threading.Event = None,
) -> ReporteGastos:
    hoy = hoy or date.today()
    gastos = list(gastos)  # foto de los gastos al momento del reporte
    reporte = ReporteGastos(moneda=moneda.upper(), total_gastos=len(gastos))

    reporte.por_estado = {estado: 0 for estado in ESTADOS}
    for gasto in gastos:
        reporte.por_estado[gasto.estado] = reporte.por_estado.get(gasto.estado, 0) + 1

    aprobados = [g for g in gastos if g.estado == ESTADO_APROBADO]
    reporte.aprobados = len(aprobados)
    montos = normalizador.normalizar_lote(aprobados, reporte.moneda, cancelado)

    validos: List[Tuple[Gasto, Decimal]] = []
    for gasto in aprobados:
        monto = montos.get(gasto.id)
        if monto is None:
            reporte.no_convertibles.append(gasto.id)
        else:
            validos.append((gasto, monto))
    if reporte.no_convertibles:
        logger.warning(
            "%d gastos aprobados sin tasa hacia %s: %s",
            len(reporte.no_convertibles), reporte.moneda, ", ".join(reporte.no_convertibles),
        )

    reporte.convertidos = len(validos)
    reporte.total = sum((m for _, m in validos), Decimal(0))
    if validos:
        reporte.promedio = reporte.total / len(validos)

    reporte.por_categoria = _ordenar_desc(_acumular(validos, lambda g: g.categoria))

    # Por mes calendario según la fecha del gasto, solo la ventana reciente
    ventana = meses_recientes(hoy, policy.POLITICA["reportes"]["meses_recientes"])
    por_mes = OrderedDict((mes, Decimal(0)) for mes in ventana)
    for gasto, monto in validos:
        clave = gasto.fecha.strftime("%Y-%m")
        if clave in por_mes:
            por_mes[clave] += monto
    reporte.por_mes = list(por_mes.items())

    top = policy.POLITICA["reportes"]["top_empleados"]
    reporte.top_empleados = _ordenar_desc(_acumular(validos, lambda g: g.usuario_id))[:top]
    return reporte
