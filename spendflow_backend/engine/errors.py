class ErrorGastos(Exception):
    """Base de todos los errores del motor de gastos."""


class GastoInvalido(ErrorGastos, ValueError):
    """
    Borrador de gasto rechazado al momento de crearlo.
    'errores' es una lista de dicts {"codigo", "mensaje"} (mismo formato que las alertas del validador).
    """

    def __init__(self, errores):
        self.errores = list(errores)
        mensajes = "; ".join(e["mensaje"] for e in self.errores)
        super().__init__(f"Gasto inválido: {mensajes}")


class UsuarioInvalido(ErrorGastos, ValueError):
    pass


class AccionNoAutorizada(ErrorGastos, PermissionError):
    """El actor no puede aprobar/rechazar el gasto en su estado actual. El gasto no se modifica."""

    def __init__(self, gasto_id: str, actor_id: str, motivo: str):
        self.gasto_id = gasto_id
        self.actor_id = actor_id
        self.motivo = motivo
        super().__init__(f"El usuario {actor_id} no puede actuar sobre el gasto {gasto_id}: {motivo}")


class GastoNoEncontrado(ErrorGastos, LookupError):
    pass


class UsuarioNoEncontrado(ErrorGastos, LookupError):
    pass
