import json
from unittest import mock

from django.test import TestCase

from engine import views
from engine.conversion import Normalizador
from engine.demo import repositorio_demo
from engine.exchange import ProveedorTasas
from engine.tests.fakes import FuenteFalsa


class TestApiGastos(TestCase):
    def setUp(self):
        self.repo = repositorio_demo()
        self.fuente = FuenteFalsa()
        proveedor = ProveedorTasas(fuente=self.fuente)
        for nombre, valor in (
            ("REPOSITORIO", self.repo),
            ("PROVEEDOR", proveedor),
            ("NORMALIZADOR", Normalizador(proveedor)),
        ):
            parche = mock.patch.object(views, nombre, valor)
            parche.start()
            self.addCleanup(parche.stop)

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type="application/json")

    def test_listado_segun_alcance(self):
        respuesta = self.client.get("/api/gastos/", {"usuario_id": "user-3"})
        self.assertEqual(respuesta.status_code, 200)
        ids = {g["id"] for g in respuesta.json()["gastos"]}
        self.assertEqual(ids, {"exp-1", "exp-3"})

        respuesta = self.client.get("/api/gastos/", {"usuario_id": "user-2", "estado": "PENDIENTE"})
        gastos = respuesta.json()["gastos"]
        self.assertEqual([g["id"] for g in gastos], ["exp-2"])
        self.assertTrue(gastos[0]["puede_actuar"])
        self.assertEqual(gastos[0]["siguiente_rol"], "MANAGER")
        self.assertEqual(gastos[0]["monto_base"], "1320.00")

    def test_listado_requiere_usuario(self):
        self.assertEqual(self.client.get("/api/gastos/").status_code, 400)
        self.assertEqual(self.client.get("/api/gastos/", {"usuario_id": "nadie"}).status_code, 404)

    def test_crear_gasto(self):
        respuesta = self.post("/api/gastos/", {
            "usuario_id": "user-3", "monto": "19.99", "moneda": "usd",
            "categoria": "Software", "descripcion": "Licencia", "fecha": "2024-01-10",
        })
        self.assertEqual(respuesta.status_code, 201)
        datos = respuesta.json()
        self.assertEqual(datos["estado"], "PENDIENTE")
        self.assertEqual(datos["historial"], [])
        self.assertFalse(datos["puede_actuar"])

    def test_crear_gasto_invalido(self):
        respuesta = self.post("/api/gastos/", {"usuario_id": "user-3", "monto": -1, "moneda": "USD"})
        self.assertEqual(respuesta.status_code, 400)
        codigos = {e["codigo"] for e in respuesta.json()["errores"]}
        self.assertIn("MONTO_INVALIDO", codigos)

    def test_json_invalido(self):
        respuesta = self.client.post("/api/gastos/", data="{no-json", content_type="application/json")
        self.assertEqual(respuesta.status_code, 400)

    def test_decisiones(self):
        respuesta = self.post("/api/gastos/exp-2/decision/", {"aprobador_id": "user-2", "decision": "APROBADO"})
        self.assertEqual(respuesta.status_code, 200)
        datos = respuesta.json()
        self.assertEqual(datos["estado"], "PENDIENTE")
        self.assertEqual(datos["estado_visible"], "PENDIENTE_SIGUIENTE_NIVEL")
        self.assertEqual(datos["siguiente_rol"], "ADMIN")

        # Un empleado no puede aprobar
        respuesta = self.post("/api/gastos/exp-2/decision/", {"aprobador_id": "user-3", "decision": "APROBADO"})
        self.assertEqual(respuesta.status_code, 403)

        respuesta = self.post("/api/gastos/exp-2/decision/", {"aprobador_id": "user-1", "decision": "APROBADO"})
        self.assertEqual(respuesta.json()["estado"], "APROBADO")
        self.assertEqual(len(respuesta.json()["historial"]), 2)

    def test_decision_con_errores(self):
        url = "/api/gastos/exp-2/decision/"
        self.assertEqual(self.post(url, {"aprobador_id": "user-2"}).status_code, 400)
        self.assertEqual(self.post(url, {"aprobador_id": "user-2", "decision": "TAL VEZ"}).status_code, 400)
        self.assertEqual(self.client.get(url).status_code, 405)
        respuesta = self.post("/api/gastos/exp-99/decision/", {"aprobador_id": "user-2", "decision": "APROBADO"})
        self.assertEqual(respuesta.status_code, 404)

    def test_reporte_admin(self):
        respuesta = self.client.get("/api/reportes/", {"usuario_id": "user-1"})
        self.assertEqual(respuesta.status_code, 200)
        datos = respuesta.json()
        self.assertEqual(datos["moneda"], "USD")
        self.assertEqual(datos["total"], "75.50")
        self.assertEqual(datos["total_gastos"], 3)
        self.assertEqual(datos["por_estado"], {"PENDIENTE": 1, "APROBADO": 1, "RECHAZADO": 1})
        self.assertEqual(datos["top_empleados"], [{"usuario_id": "user-3", "total": "75.50"}])

    def test_reporte_en_otra_moneda(self):
        datos = self.client.get("/api/reportes/", {"usuario_id": "user-1", "moneda": "eur"}).json()
        self.assertEqual(datos["moneda"], "EUR")
        self.assertEqual(datos["total"], "67.95")
        self.assertEqual(self.fuente.llamadas, ["USD"])

    def test_usuarios(self):
        respuesta = self.post("/api/usuarios/", {
            "nombre": "Nora", "email": "nora@innovate.com", "rol": "EMPLEADO", "manager_id": "user-2",
        })
        self.assertEqual(respuesta.status_code, 201)
        respuesta = self.post("/api/usuarios/", {"nombre": "Sin manager", "email": "x@innovate.com", "rol": "EMPLEADO"})
        self.assertEqual(respuesta.status_code, 400)

        empleados = self.client.get("/api/usuarios/", {"rol": "EMPLEADO"}).json()["usuarios"]
        self.assertEqual(len(empleados), 3)
