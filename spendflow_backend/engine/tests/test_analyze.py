import os
import tempfile
from pathlib import Path
from unittest import mock

from django.test import TestCase
from dotenv import load_dotenv

import analyze
from engine.tests.fakes import FuenteFalsa

CSV = """gasto_id,usuario_id,monto,moneda,fecha,categoria,descripcion,estado
g1,u1,100,USD,2024-05-02,Travel,Vuelo,APROBADO
g2,u2,50,EUR,2024-05-03,Meals & Entertainment,Cena,aprobado
g3,u1,abc,USD,2024-05-04,Travel,Monto roto,APROBADO
g4,u3,30,XYZ,2024-05-05,Travel,Moneda rara,APROBADO
g5,u3,10,USD,2024-05-05,Travel,Pendiente,PENDIENTE
"""


class TestAnalyze(TestCase):
    def setUp(self):
        directorio = tempfile.TemporaryDirectory()
        self.addCleanup(directorio.cleanup)
        self.dir = Path(directorio.name)
        self.csv = self.dir / "gastos.csv"
        self.csv.write_text(CSV, encoding="utf-8")

    def test_leer_gastos_salta_filas_invalidas(self):
        gastos = analyze.leer_gastos(self.csv)
        self.assertEqual([g.id for g in gastos], ["g1", "g2", "g4", "g5"])
        self.assertEqual(gastos[1].estado, "APROBADO")

    def test_main_escribe_el_reporte(self):
        salida = self.dir / "out" / "REPORTE.md"
        with mock.patch("engine.exchange.consultar_tasas_api", FuenteFalsa()):
            codigo = analyze.main(["--csv", str(self.csv), "--salida", str(salida)])

        self.assertEqual(codigo, 0)
        texto = salida.read_text(encoding="utf-8")
        self.assertIn("Total aprobado: 155.00 USD", texto)
        self.assertIn("Aprobados con conversión válida: 2 de 3", texto)
        self.assertIn("Sin tasa de cambio (excluidos): g4", texto)

    def test_csv_inexistente(self):
        self.assertEqual(analyze.main(["--csv", str(self.dir / "no.csv")]), 2)

    def test_main_usa_la_configuracion_del_env(self):
        # El .env se carga dentro de main, después de importar engine.exchange
        env = self.dir / ".env"
        env.write_text("EXCHANGE_RATE_API_URL=https://tasas.test/latest/\nEXCHANGE_RATE_TIMEOUT=2\n", encoding="utf-8")
        salida = self.dir / "REPORTE.md"

        with mock.patch.dict(os.environ), \
                mock.patch.object(analyze, "_load_env", lambda: load_dotenv(env, override=True)), \
                mock.patch("engine.exchange.requests.get") as mock_get:
            mock_get.return_value.json.return_value = {"rates": {"USD": 1.1}}
            codigo = analyze.main(["--csv", str(self.csv), "--salida", str(salida)])

        self.assertEqual(codigo, 0)
        self.assertTrue(mock_get.called)
        for llamada in mock_get.call_args_list:
            self.assertTrue(llamada[0][0].startswith("https://tasas.test/latest/"))
            self.assertEqual(llamada[1]["timeout"], 2.0)
