import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from engine.errors import GastoInvalido, UsuarioInvalido
from engine.models import ROL_EMPLEADO, ROLES, Usuario

CODIGO_MONEDA = re.compile(r"^[A-Z]{3}$")


def _parse_fecha(valor) -> Optional[date]:
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    try:
        return datetime.strptime(str(valor).strip(), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def _parse_monto(valor) -> Optional[Decimal]:
    if isinstance(valor, bool):
        return None
    try:
        monto = Decimal(str(valor).strip())
    except (InvalidOperation, ValueError):
        return None
    return monto if monto.is_finite() else None


def validar_borrador(borrador: Mapping, hoy: date = None) -> dict:
    """
    Valida los campos que ingresa el empleado al reportar un gasto.
    Devuelve los campos normalizados (monto Decimal, moneda en mayúsculas, fecha date)
    o lanza GastoInvalido con todas las infracciones encontradas.
    """
    errores = []  # recopila todas las infracciones, no solo la primera
    hoy = hoy or date.today()

    ##### 1. Monto #####
    monto = _parse_monto(borrador.get("monto"))
    if monto is None:
        errores.append({"codigo": "MONTO_INVALIDO", "mensaje": "El monto debe ser un número."})
    elif monto <= 0:
        errores.append({"codigo": "MONTO_INVALIDO", "mensaje": "El monto debe ser mayor que cero."})

    ##### 2. Moneda #####
    moneda = str(borrador.get("moneda") or "").strip().upper()
    if not CODIGO_MONEDA.match(moneda):
        errores.append({"codigo": "MONEDA_INVALIDA", "mensaje": f"Código de moneda inválido: {moneda!r}."})

    ##### 3. Descripción y categoría #####
    descripcion = str(borrador.get("descripcion") or "").strip()
    if not descripcion:
        errores.append({"codigo": "DESCRIPCION_REQUERIDA", "mensaje": "La descripción es obligatoria."})
    categoria = str(borrador.get("categoria") or "").strip()
    if not categoria:
        errores.append({"codigo": "CATEGORIA_REQUERIDA", "mensaje": "La categoría es obligatoria."})

    ##### 4. Fecha (no puede ser futura) #####
    fecha = None
    if not borrador.get("fecha"):
        errores.append({"codigo": "FECHA_REQUERIDA", "mensaje": "La fecha es obligatoria."})
    else:
        fecha = _parse_fecha(borrador["fecha"])
        if fecha is None:
            errores.append({"codigo": "FECHA_INVALIDA", "mensaje": "Formato de fecha inválido, se espera YYYY-MM-DD."})
        elif fecha > hoy:
            errores.append({"codigo": "FECHA_FUTURA", "mensaje": "La fecha del gasto no puede ser futura."})

    if errores:
        raise GastoInvalido(errores)

    return {
        "monto": monto,
        "moneda": moneda,
        "categoria": categoria,
        "descripcion": descripcion,
        "fecha": fecha,
    }


def validar_usuario(usuario: Usuario, usuarios: Mapping[str, Usuario]) -> None:
    """Un empleado necesita un manager existente; managers y admins no."""
    if usuario.rol not in ROLES:
        raise UsuarioInvalido(f"Rol desconocido: {usuario.rol!r}")
    if not usuario.email or "@" not in usuario.email:
        raise UsuarioInvalido(f"Email inválido para {usuario.nombre!r}")

    for otro in usuarios.values():
        if otro.id != usuario.id and otro.email.lower() == usuario.email.lower():
            raise UsuarioInvalido(f"Ya existe un usuario con el email {usuario.email}")

    if usuario.rol == ROL_EMPLEADO:
        if not usuario.manager_id:
            raise UsuarioInvalido(f"El empleado {usuario.nombre!r} debe tener un manager asignado")
        manager = usuarios.get(usuario.manager_id)
        if manager is None or manager.rol == ROL_EMPLEADO:
            raise UsuarioInvalido(f"El manager {usuario.manager_id!r} no existe o no es manager/admin")
