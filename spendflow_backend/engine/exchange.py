import logging
import os
import threading
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

import requests

from engine import policy

logger = logging.getLogger(__name__)

# Endpoint por moneda de origen: {base, date, rates: {destino: tasa}}
URL_TASAS_POR_DEFECTO = "https://api.exchangerate-api.com/v4/latest/"
URL_PAISES_POR_DEFECTO = "https://restcountries.com/v3.1/all?fields=name,currencies"
MONEDAS_POR_DEFECTO = ["USD", "EUR", "GBP", "JPY"]


def _get_url_tasas() -> str:
    # Se lee en cada llamada: el .env puede cargarse después de importar el módulo
    return os.getenv("EXCHANGE_RATE_API_URL") or URL_TASAS_POR_DEFECTO


def _get_url_paises() -> str:
    return os.getenv("COUNTRIES_API_URL") or URL_PAISES_POR_DEFECTO


def _get_timeout() -> float:
    valor = os.getenv("EXCHANGE_RATE_TIMEOUT")
    if valor:
        try:
            return float(valor)
        except ValueError:
            logger.warning("EXCHANGE_RATE_TIMEOUT inválido: %r", valor)
    return float(policy.POLITICA["tasas"]["timeout_segundos"])


# fuente(moneda_origen, timeout) -> {moneda_destino: tasa}
FuenteTasas = Callable[[str, float], Dict[str, Decimal]]


def consultar_tasas_api(moneda: str, timeout: float) -> Dict[str, Decimal]:
    """
    Obtiene la tabla completa de tasas para 1 unidad de 'moneda'.
    Lanza excepción ante errores de red, timeout o respuesta inválida (el ProveedorTasas las maneja).
    """
    response = requests.get(f"{_get_url_tasas()}{moneda}", timeout=timeout)
    response.raise_for_status()
    data = response.json()
    raw_rates = data.get("rates")
    if not isinstance(raw_rates, dict):
        raise ValueError(f"Respuesta sin 'rates' para {moneda}")

    parsed: Dict[str, Decimal] = {}
    for sym, val in raw_rates.items():
        try:
            parsed[str(sym).upper()] = Decimal(str(val))
        except (InvalidOperation, ValueError):
            continue
    return parsed


@dataclass
class EntradaCache:
    tasas: Dict[str, Decimal]
    obtenido_en: float


class CacheTasas:
    """
    Cache de tablas de tasas por moneda de origen, con ventana de vigencia.
    Se comparte por referencia entre todos los que convierten montos.
    """

    def __init__(self, vigencia_segundos: float = None, reloj: Callable[[], float] = time.monotonic):
        if vigencia_segundos is None:
            vigencia_segundos = policy.POLITICA["tasas"]["vigencia_segundos"]
        self.vigencia_segundos = vigencia_segundos
        self._reloj = reloj
        self._entradas: Dict[str, EntradaCache] = {}
        self._lock = threading.Lock()

    def obtener(self, moneda: str) -> Optional[Dict[str, Decimal]]:
        """Tabla vigente para 'moneda', o None si no existe o ya expiró."""
        with self._lock:
            entrada = self._entradas.get(moneda)
        if entrada is None:
            return None
        if self._reloj() - entrada.obtenido_en >= self.vigencia_segundos:
            return None
        return entrada.tasas

    def guardar(self, moneda: str, tasas: Dict[str, Decimal]) -> None:
        # Reemplaza la entrada completa de esa moneda
        with self._lock:
            self._entradas[moneda] = EntradaCache(tasas=dict(tasas), obtenido_en=self._reloj())

    def invalidar(self, moneda: str) -> None:
        with self._lock:
            self._entradas.pop(moneda, None)

    def limpiar(self) -> None:
        with self._lock:
            self._entradas.clear()

    def __len__(self):
        with self._lock:
            return len(self._entradas)


class ProveedorTasas:
    """
    Entrega la tasa de conversión entre dos monedas, o None si no está disponible.
    Nunca lanza excepción por fallas de la fuente externa: la conversión fallida no debe romper los reportes.
    """

    def __init__(self, cache: CacheTasas = None, fuente: FuenteTasas = None, timeout: float = None):
        self.cache = cache if cache is not None else CacheTasas()
        self._fuente = fuente or consultar_tasas_api
        self.timeout = timeout if timeout is not None else _get_timeout()
        self.consultas = 0  # consultas externas realizadas
        self._lock = threading.Lock()
        self._en_curso: Dict[str, threading.Lock] = {}
        self._monedas: Optional[List[str]] = None

    def tabla(self, origen: str) -> Optional[Dict[str, Decimal]]:
        origen = origen.upper()
        tasas = self.cache.obtener(origen)
        if tasas is not None:
            return tasas

        # Un candado por moneda: consultas simultáneas por la misma moneda se agrupan en una sola
        with self._lock:
            candado = self._en_curso.setdefault(origen, threading.Lock())
        with candado:
            tasas = self.cache.obtener(origen)
            if tasas is not None:
                return tasas
            with self._lock:
                self.consultas += 1
            try:
                tasas = self._fuente(origen, self.timeout)
                if not isinstance(tasas, dict):
                    raise ValueError(f"la fuente devolvió {type(tasas).__name__} en vez de una tabla")
                self.cache.guardar(origen, tasas)
            except Exception as e:
                # Handling de errores de red, timeout, JSON inválido o fuente mal formada
                logger.warning("No se pudo consultar la tabla de tasas para %s: %s", origen, e)
                return None
            logger.debug("Tabla de tasas para %s actualizada (%d monedas)", origen, len(tasas))
            return tasas

    def obtener_tasa(self, origen: str, destino: str) -> Optional[Decimal]:
        """Tasa para convertir 1 unidad de 'origen' a 'destino'."""
        if origen.upper() == destino.upper():
            return Decimal(1)
        tabla = self.tabla(origen)
        if tabla is None:
            return None
        tasa = tabla.get(destino.upper())
        if tasa is None or tasa <= 0:
            logger.warning("No existe la tasa de cambio %s -> %s", origen, destino)
            return None
        return tasa

    def monedas_disponibles(self) -> List[str]:
        """Códigos de moneda conocidos (vía REST Countries); lista mínima si la API falla."""
        if self._monedas is not None:
            return self._monedas
        try:
            response = requests.get(_get_url_paises(), timeout=self.timeout)
            response.raise_for_status()
            paises = response.json()
        except Exception as e:
            logger.warning("No se pudo obtener la lista de monedas: %s", e)
            return list(MONEDAS_POR_DEFECTO)

        monedas = set()
        for pais in paises:
            monedas.update((pais.get("currencies") or {}).keys())
        self._monedas = sorted(monedas) or list(MONEDAS_POR_DEFECTO)
        return self._monedas
