import logging
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# extractor(imagen) -> {monto?, moneda?, fecha?, proveedor?, descripcion?, categoria?}
ExtractorRecibos = Callable[[bytes], Mapping]


def sembrar_borrador(borrador: Mapping, extractor: Optional[ExtractorRecibos], imagen: bytes) -> Dict:
    """
    Completa un borrador con lo que el extractor logre leer del recibo.
    Los campos ausentes conservan el valor del borrador; si el extractor falla,
    se devuelve el borrador sin cambios para que el empleado siga con el ingreso manual.
    """
    semilla = dict(borrador)
    if extractor is None or not imagen:
        return semilla

    try:
        datos = extractor(imagen) or {}
    except Exception as e:
        logger.warning("No se pudo procesar el recibo, se continúa con ingreso manual: %s", e)
        return semilla

    for campo in ("monto", "moneda", "fecha", "categoria"):
        if datos.get(campo):
            semilla[campo] = datos[campo]

    # El proveedor se antepone a la descripción leída
    proveedor = str(datos.get("proveedor") or "").strip()
    descripcion = str(datos.get("descripcion") or "").strip()
    if proveedor:
        semilla["descripcion"] = f"{proveedor} - {descripcion}".strip(" -")
    elif descripcion:
        semilla["descripcion"] = descripcion

    return semilla
