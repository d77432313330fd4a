import logging
import threading
import uuid
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

from engine import workflow
from engine.errors import GastoNoEncontrado, UsuarioNoEncontrado
from engine.models import ROL_ADMIN, ROL_EMPLEADO, ROL_MANAGER, Gasto, Usuario
from engine.validator import validar_borrador, validar_usuario
from engine.workflow import FLUJO_POR_DEFECTO, FlujoAprobacion

logger = logging.getLogger(__name__)

TODOS = "All"  # valor de filtro que no filtra


def _coincide(valor, esperado) -> bool:
    return esperado in (None, "", TODOS) or valor == esperado


class RepositorioGastos:
    """
    Almacén en memoria de usuarios y gastos.
    Las decisiones sobre un mismo gasto se serializan con un candado por gasto;
    los listados devuelven una foto del momento (los Gasto son inmutables).
    """

    def __init__(
        self,
        usuarios: Iterable[Usuario] = (),
        gastos: Iterable[Gasto] = (),
        flujo: FlujoAprobacion = FLUJO_POR_DEFECTO,
    ):
        self.flujo = flujo
        self._lock = threading.Lock()
        self._usuarios: Dict[str, Usuario] = {u.id: u for u in usuarios}
        self._gastos: Dict[str, Gasto] = {g.id: g for g in gastos}
        self._candados: Dict[str, threading.Lock] = {}

    def _candado(self, gasto_id: str) -> threading.Lock:
        with self._lock:
            return self._candados.setdefault(gasto_id, threading.Lock())

    ##### Usuarios #####

    def usuarios(self) -> Dict[str, Usuario]:
        with self._lock:
            return dict(self._usuarios)

    def obtener_usuario(self, usuario_id: str) -> Usuario:
        with self._lock:
            usuario = self._usuarios.get(usuario_id)
        if usuario is None:
            raise UsuarioNoEncontrado(f"No existe el usuario {usuario_id}")
        return usuario

    def listar_usuarios(self, filtro: Mapping = None) -> List[Usuario]:
        filtro = filtro or {}
        return [
            u for u in self.usuarios().values()
            if _coincide(u.rol, filtro.get("rol")) and _coincide(u.manager_id, filtro.get("manager_id"))
        ]

    def equipo_de(self, manager_id: str) -> List[Usuario]:
        return [u for u in self.usuarios().values() if u.manager_id == manager_id]

    def agregar_usuario(self, nombre: str, email: str, rol: str, manager_id: Optional[str] = None) -> Usuario:
        usuario = Usuario(
            id=f"user-{uuid.uuid4().hex[:8]}",
            nombre=nombre.strip(),
            email=email.strip(),
            rol=rol,
            manager_id=manager_id if rol == ROL_EMPLEADO else None,
        )
        with self._lock:
            validar_usuario(usuario, self._usuarios)
            self._usuarios[usuario.id] = usuario
        logger.info("Usuario %s creado con rol %s", usuario.id, usuario.rol)
        return usuario

    def actualizar_usuario(self, usuario: Usuario) -> Usuario:
        if usuario.rol != ROL_EMPLEADO and usuario.manager_id is not None:
            usuario = replace(usuario, manager_id=None)
        with self._lock:
            if usuario.id not in self._usuarios:
                raise UsuarioNoEncontrado(f"No existe el usuario {usuario.id}")
            validar_usuario(usuario, self._usuarios)
            self._usuarios[usuario.id] = usuario
        logger.info("Usuario %s actualizado", usuario.id)
        return usuario

    ##### Gastos #####

    def crear_gasto(self, borrador: Mapping, usuario_id: str, hoy: date = None) -> Gasto:
        """Crea el gasto en estado PENDIENTE con historial vacío. Lanza GastoInvalido si el borrador no es válido."""
        self.obtener_usuario(usuario_id)
        campos = validar_borrador(borrador, hoy=hoy)
        gasto = Gasto(id=f"exp-{uuid.uuid4().hex[:12]}", usuario_id=usuario_id, **campos)
        with self._lock:
            self._gastos[gasto.id] = gasto
        logger.info("Gasto %s creado por %s: %s %s", gasto.id, usuario_id, gasto.monto, gasto.moneda)
        return gasto

    def obtener_gasto(self, gasto_id: str) -> Gasto:
        with self._lock:
            gasto = self._gastos.get(gasto_id)
        if gasto is None:
            raise GastoNoEncontrado(f"No existe el gasto {gasto_id}")
        return gasto

    def listar_gastos(self, filtro: Mapping = None) -> List[Gasto]:
        """Filtros opcionales: usuario_id, usuario_ids, estado, categoria ("All" o vacío no filtra)."""
        filtro = filtro or {}
        usuario_ids = filtro.get("usuario_ids")
        with self._lock:
            gastos = list(self._gastos.values())
        return [
            g for g in gastos
            if _coincide(g.usuario_id, filtro.get("usuario_id"))
            and (usuario_ids is None or g.usuario_id in usuario_ids)
            and _coincide(g.estado, filtro.get("estado"))
            and _coincide(g.categoria, filtro.get("categoria"))
        ]

    def gastos_visibles(self, actor: Usuario, filtro: Mapping = None) -> List[Gasto]:
        """
        Alcance según el rol del actor:
            EMPLEADO -> sus propios gastos
            MANAGER  -> los suyos y los de su equipo directo
            ADMIN    -> todos
        """
        filtro = dict(filtro or {})
        if actor.rol == ROL_ADMIN:
            return self.listar_gastos(filtro)
        if actor.rol == ROL_MANAGER:
            filtro["usuario_ids"] = {actor.id} | {u.id for u in self.equipo_de(actor.id)}
            return self.listar_gastos(filtro)
        filtro["usuario_id"] = actor.id
        return self.listar_gastos(filtro)

    def puede_actuar(self, gasto_id: str, actor_id: str) -> bool:
        return workflow.puede_actuar(
            self.obtener_gasto(gasto_id), self.obtener_usuario(actor_id), self.usuarios(), self.flujo
        )

    def aplicar_decision(self, gasto_id: str, decision: str, comentario: str, aprobador_id: str) -> Gasto:
        """
        Agrega la decisión al historial y actualiza el estado como una sola operación por gasto.
        Lanza AccionNoAutorizada (sin modificar el gasto) si el aprobador no puede actuar.
        """
        aprobador = self.obtener_usuario(aprobador_id)
        with self._candado(gasto_id):
            gasto = self.obtener_gasto(gasto_id)
            nuevo = workflow.aplicar_decision(gasto, decision, comentario, aprobador, self.usuarios(), self.flujo)
            with self._lock:
                self._gastos[gasto_id] = nuevo
        return nuevo
