import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from engine import workflow
from engine.conversion import Normalizador
from engine.demo import repositorio_demo
from engine.errors import AccionNoAutorizada, ErrorGastos, GastoNoEncontrado, UsuarioNoEncontrado
from engine.exchange import ProveedorTasas
from engine.policy import EMPRESA
from engine.reports import CENTAVOS, construir_reporte

logger = logging.getLogger(__name__)

# Colaboradores del proceso: el cache de tasas se comparte entre todas las vistas
REPOSITORIO = repositorio_demo()
PROVEEDOR = ProveedorTasas()
NORMALIZADOR = Normalizador(PROVEEDOR)


def _leer_json(request):
    try:
        return json.loads(request.body.decode("utf-8") or "{}"), None
    except ValueError:
        return None, JsonResponse({"error": "JSON inválido"}, status=400)


def _respuesta_error(e: ErrorGastos) -> JsonResponse:
    if isinstance(e, AccionNoAutorizada):
        return JsonResponse({"error": str(e), "motivo": e.motivo}, status=403)
    if isinstance(e, (GastoNoEncontrado, UsuarioNoEncontrado)):
        return JsonResponse({"error": str(e)}, status=404)
    return JsonResponse({"error": str(e), "errores": getattr(e, "errores", [])}, status=400)


def _usuario_json(usuario):
    return {
        "id": usuario.id,
        "nombre": usuario.nombre,
        "email": usuario.email,
        "rol": usuario.rol,
        "manager_id": usuario.manager_id,
    }


def _gasto_json(gasto, actor, usuarios, monto_base=None):
    return {
        "id": gasto.id,
        "usuario_id": gasto.usuario_id,
        "monto": str(gasto.monto),
        "moneda": gasto.moneda,
        "categoria": gasto.categoria,
        "descripcion": gasto.descripcion,
        "fecha": gasto.fecha.isoformat(),
        "estado": gasto.estado,
        "estado_visible": workflow.estado_visible(gasto),
        "siguiente_rol": workflow.siguiente_rol(gasto, usuarios, REPOSITORIO.flujo),
        "puede_actuar": workflow.puede_actuar(gasto, actor, usuarios, REPOSITORIO.flujo),
        "monto_base": None if monto_base is None else str(monto_base.quantize(CENTAVOS)),
        "historial": [
            {
                "aprobador_id": e.aprobador_id,
                "decision": e.decision,
                "comentario": e.comentario,
                "fecha_hora": e.fecha_hora.isoformat(),
            }
            for e in gasto.historial
        ],
    }


@csrf_exempt
def gastos_api(request):
    """GET: gastos visibles para 'usuario_id'. POST: reportar un gasto nuevo."""
    if request.method == "GET":
        actor_id = request.GET.get("usuario_id")
        if not actor_id:
            return JsonResponse({"error": "Falta campo requerido: usuario_id"}, status=400)
        try:
            actor = REPOSITORIO.obtener_usuario(actor_id)
        except ErrorGastos as e:
            return _respuesta_error(e)
        filtro = {k: request.GET.get(k) for k in ("estado", "categoria")}
        filtro["usuario_id"] = request.GET.get("empleado")
        gastos = REPOSITORIO.gastos_visibles(actor, filtro)
        usuarios = REPOSITORIO.usuarios()
        montos = NORMALIZADOR.normalizar_lote(gastos, EMPRESA.moneda_base)
        return JsonResponse({
            "moneda_base": EMPRESA.moneda_base,
            "gastos": [_gasto_json(g, actor, usuarios, montos.get(g.id)) for g in gastos],
        })

    if request.method != "POST":
        return JsonResponse({"error": "Método no permitido"}, status=405)

    data, error = _leer_json(request)
    if error:
        return error
    usuario_id = data.get("usuario_id")
    if not usuario_id:
        return JsonResponse({"error": "Falta campo requerido: usuario_id"}, status=400)
    try:
        gasto = REPOSITORIO.crear_gasto(data, usuario_id)
        actor = REPOSITORIO.obtener_usuario(usuario_id)
    except ErrorGastos as e:
        return _respuesta_error(e)
    return JsonResponse(_gasto_json(gasto, actor, REPOSITORIO.usuarios()), status=201)


@csrf_exempt
def decision_api(request, gasto_id):
    if request.method != "POST":
        return JsonResponse({"error": "Solo método POST permitido"}, status=405)
    data, error = _leer_json(request)
    if error:
        return error
    try:
        aprobador_id = data["aprobador_id"]
        decision = data["decision"]
    except KeyError as e:
        return JsonResponse({"error": f"Falta campo requerido: {e}"}, status=400)

    try:
        gasto = REPOSITORIO.aplicar_decision(gasto_id, decision, data.get("comentario", ""), aprobador_id)
        aprobador = REPOSITORIO.obtener_usuario(aprobador_id)
    except ErrorGastos as e:
        return _respuesta_error(e)
    except ValueError as e:
        # decisión desconocida
        return JsonResponse({"error": str(e)}, status=400)
    return JsonResponse(_gasto_json(gasto, aprobador, REPOSITORIO.usuarios()))


def reporte_api(request):
    if request.method != "GET":
        return JsonResponse({"error": "Solo método GET permitido"}, status=405)
    actor_id = request.GET.get("usuario_id")
    if not actor_id:
        return JsonResponse({"error": "Falta campo requerido: usuario_id"}, status=400)
    try:
        actor = REPOSITORIO.obtener_usuario(actor_id)
    except ErrorGastos as e:
        return _respuesta_error(e)
    moneda = (request.GET.get("moneda") or EMPRESA.moneda_base).upper()
    reporte = construir_reporte(REPOSITORIO.gastos_visibles(actor), NORMALIZADOR, moneda)
    return JsonResponse(reporte.como_dict())


@csrf_exempt
def usuarios_api(request):
    if request.method == "GET":
        usuarios = REPOSITORIO.listar_usuarios({"rol": request.GET.get("rol")})
        return JsonResponse({"usuarios": [_usuario_json(u) for u in usuarios]})
    if request.method != "POST":
        return JsonResponse({"error": "Método no permitido"}, status=405)

    data, error = _leer_json(request)
    if error:
        return error
    try:
        usuario = REPOSITORIO.agregar_usuario(
            nombre=data["nombre"], email=data["email"], rol=data["rol"], manager_id=data.get("manager_id")
        )
    except KeyError as e:
        return JsonResponse({"error": f"Falta campo requerido: {e}"}, status=400)
    except ErrorGastos as e:
        return _respuesta_error(e)
    return JsonResponse(_usuario_json(usuario), status=201)


def monedas_api(request):
    return JsonResponse({"monedas": PROVEEDOR.monedas_disponibles(), "moneda_base": EMPRESA.moneda_base})
