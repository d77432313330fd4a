import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from decimal import Decimal
from typing import Dict, Iterable, Optional

from engine import policy
from engine.exchange import ProveedorTasas
from engine.models import Gasto

logger = logging.getLogger(__name__)


class Normalizador:
    """Convierte montos a una moneda de reporte usando un ProveedorTasas compartido."""

    def __init__(self, proveedor: ProveedorTasas, max_paralelo: int = None):
        self.proveedor = proveedor
        self.max_paralelo = max_paralelo or policy.POLITICA["tasas"]["max_consultas_paralelas"]

    def convertir(self, monto: Decimal, origen: str, destino: str) -> Optional[Decimal]:
        """Monto en 'destino', o None si no hay tasa disponible."""
        if origen.upper() == destino.upper():
            return monto
        tasa = self.proveedor.obtener_tasa(origen, destino)
        if tasa is None:
            return None
        return Decimal(monto) * tasa

    def resolver_tasas(
        self,
        monedas: Iterable[str],
        destino: str,
        cancelado: threading.Event = None,
    ) -> Dict[str, Optional[Decimal]]:
        """
        Una consulta por moneda distinta, en paralelo entre monedas.
        Si 'cancelado' se activa, se devuelven solo las tasas ya resueltas;
        lo que alcance a llegar igual queda en el cache del proveedor.
        """
        destino = destino.upper()
        pendientes = sorted({m.upper() for m in monedas} - {destino})
        tasas: Dict[str, Optional[Decimal]] = {destino: Decimal(1)}
        if not pendientes:
            return tasas

        pool = ThreadPoolExecutor(max_workers=min(self.max_paralelo, len(pendientes)))
        try:
            futuros = {pool.submit(self.proveedor.obtener_tasa, m, destino): m for m in pendientes}
            en_curso = set(futuros)
            while en_curso:
                if cancelado is not None and cancelado.is_set():
                    logger.info("Conversión a %s cancelada con %d monedas sin resolver", destino, len(en_curso))
                    break
                listos, en_curso = wait(en_curso, timeout=0.1, return_when=FIRST_COMPLETED)
                for futuro in listos:
                    tasas[futuros[futuro]] = futuro.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return tasas

    def normalizar_lote(
        self,
        gastos: Iterable[Gasto],
        destino: str,
        cancelado: threading.Event = None,
    ) -> Dict[str, Optional[Decimal]]:
        """
        Devuelve {gasto_id: monto en 'destino' o None}.
        Las tasas se resuelven por moneda (no por gasto): el número de consultas depende de las monedas distintas.
        """
        gastos = list(gastos)
        tasas = self.resolver_tasas((g.moneda for g in gastos), destino, cancelado)

        resultado: Dict[str, Optional[Decimal]] = {}
        for gasto in gastos:
            tasa = tasas.get(gasto.moneda.upper())
            resultado[gasto.id] = None if tasa is None else Decimal(gasto.monto) * tasa
        return resultado
