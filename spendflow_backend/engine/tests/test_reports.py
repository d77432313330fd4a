from datetime import date
from decimal import Decimal

from django.test import TestCase

from engine.conversion import Normalizador
from engine.exchange import ProveedorTasas
from engine.models import ESTADO_APROBADO, ESTADO_PENDIENTE, ESTADO_RECHAZADO, Gasto
from engine.reports import construir_reporte, meses_recientes
from engine.tests.fakes import FuenteFalsa, restar_meses

HOY = date(2024, 5, 20)


def gasto(id, monto, moneda="USD", estado=ESTADO_APROBADO, categoria="Travel", usuario_id="u-emp", fecha=HOY):
    return Gasto(
        id=id, usuario_id=usuario_id, monto=Decimal(monto), moneda=moneda,
        categoria=categoria, descripcion="x", fecha=fecha, estado=estado,
    )


class TestReporte(TestCase):
    def setUp(self):
        self.fuente = FuenteFalsa()
        self.normalizador = Normalizador(ProveedorTasas(fuente=self.fuente))

    def reporte(self, gastos, moneda="USD", hoy=HOY):
        return construir_reporte(gastos, self.normalizador, moneda, hoy=hoy)

    def test_promedio_excluye_gastos_sin_tasa(self):
        gastos = [
            gasto("a", "100"),
            gasto("b", "200", moneda="EUR"),   # 220 USD
            gasto("c", "999", moneda="XYZ"),   # sin tasa
            gasto("d", "50", estado=ESTADO_PENDIENTE),
        ]
        with self.assertLogs("engine", level="WARNING"):
            reporte = self.reporte(gastos)

        self.assertEqual(reporte.total, Decimal("320"))
        self.assertEqual(reporte.convertidos, 2)
        self.assertEqual(reporte.promedio, Decimal("160"))
        self.assertEqual(reporte.no_convertibles, ["c"])
        # El gasto sin tasa sigue contando como envío
        self.assertEqual(reporte.total_gastos, 4)
        self.assertEqual(reporte.aprobados, 3)

    def test_solo_aprobados_suman(self):
        gastos = [
            gasto("a", "10"),
            gasto("b", "500", estado=ESTADO_PENDIENTE),
            gasto("c", "700", estado=ESTADO_RECHAZADO),
        ]
        reporte = self.reporte(gastos)
        self.assertEqual(reporte.total, Decimal("10"))
        self.assertEqual(reporte.por_estado, {ESTADO_PENDIENTE: 1, ESTADO_APROBADO: 1, ESTADO_RECHAZADO: 1})
        self.assertEqual(self.fuente.llamadas, [])

    def test_sin_gastos_aprobados(self):
        reporte = self.reporte([gasto("a", "10", estado=ESTADO_PENDIENTE)])
        self.assertEqual(reporte.total, Decimal(0))
        self.assertEqual(reporte.promedio, Decimal(0))
        self.assertEqual(reporte.por_categoria, [])
        self.assertEqual(reporte.top_empleados, [])

    def test_categorias_ordenadas_con_empates_estables(self):
        gastos = [
            gasto("a", "30", categoria="Software"),
            gasto("b", "50", categoria="Travel"),
            gasto("c", "30", categoria="Office Supplies"),
            gasto("d", "20", categoria="Software"),
        ]
        reporte = self.reporte(gastos)
        self.assertEqual(
            reporte.por_categoria,
            [("Software", Decimal("50")), ("Travel", Decimal("50")), ("Office Supplies", Decimal("30"))],
        )

    def test_ventana_de_seis_meses(self):
        gastos = [
            gasto("hace7", "70", fecha=restar_meses(HOY, 7)),
            gasto("hace5", "50", fecha=restar_meses(HOY, 5)),
            gasto("este_mes", "10", fecha=HOY),
        ]
        reporte = self.reporte(gastos)

        meses = [mes for mes, _ in reporte.por_mes]
        self.assertEqual(meses, ["2023-12", "2024-01", "2024-02", "2024-03", "2024-04", "2024-05"])
        por_mes = dict(reporte.por_mes)
        self.assertEqual(por_mes["2023-12"], Decimal("50"))
        self.assertEqual(por_mes["2024-05"], Decimal("10"))
        self.assertNotIn("2023-10", por_mes)
        # Fuera de la ventana mensual, pero sigue en el total
        self.assertEqual(reporte.total, Decimal("130"))

    def test_ventana_relativa_a_hoy(self):
        hoy = date.today()
        gastos = [gasto("viejo", "70", fecha=restar_meses(hoy, 7)), gasto("nuevo", "10", fecha=hoy)]
        por_mes = dict(self.reporte(gastos, hoy=hoy).por_mes)
        self.assertEqual(por_mes[hoy.strftime("%Y-%m")], Decimal("10"))
        self.assertNotIn(restar_meses(hoy, 7).strftime("%Y-%m"), por_mes)
        self.assertEqual(sum(por_mes.values()), Decimal("10"))

    def test_top_cinco_empleados(self):
        montos = {"u1": "10", "u2": "70", "u3": "30", "u4": "70", "u5": "5", "u6": "60", "u7": "1"}
        gastos = [gasto(f"g-{u}", m, usuario_id=u) for u, m in montos.items()]
        gastos.append(gasto("g-extra", "25", moneda="EUR", usuario_id="u5"))  # u5: 5 + 27.5

        top = self.reporte(gastos).top_empleados
        self.assertEqual([u for u, _ in top], ["u2", "u4", "u6", "u5", "u3"])
        self.assertEqual(top[3][1], Decimal("32.5"))

    def test_como_dict(self):
        reporte = self.reporte([gasto("a", "10.005"), gasto("b", "3", moneda="EUR")], moneda="usd")
        datos = reporte.como_dict()
        self.assertEqual(datos["moneda"], "USD")
        self.assertEqual(datos["total"], "13.30")
        self.assertEqual(datos["por_categoria"], [{"categoria": "Travel", "total": "13.30"}])
        self.assertEqual(len(datos["por_mes"]), 6)


class TestMesesRecientes(TestCase):
    def test_cruza_el_cambio_de_anio(self):
        self.assertEqual(meses_recientes(date(2024, 2, 29), 3), ["2023-12", "2024-01", "2024-02"])
