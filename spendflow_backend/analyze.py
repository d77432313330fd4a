"""Reporte de gastos por lotes

- Lee un CSV de gastos (con su estado de aprobación)
- Normaliza los montos aprobados a una moneda de reporte (una consulta por moneda distinta)
- Calcula totales por categoría, por mes (últimos 6) y top de empleados
- Escribe REPORTE.md con los resultados

Uso:
  python analyze.py --csv gastos.csv
  python analyze.py --csv gastos.csv --moneda EUR --salida ../output/REPORTE.md

Columnas esperadas:
  gasto_id, usuario_id, monto, moneda, fecha (YYYY-MM-DD), categoria, descripcion, estado
"""

from __future__ import annotations

import argparse
import csv
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from engine.conversion import Normalizador
from engine.exchange import ProveedorTasas
from engine.models import ESTADOS, Gasto
from engine.policy import EMPRESA
from engine.reports import CENTAVOS, ReporteGastos, construir_reporte

DEFAULT_REPORT_MD = "../output/REPORTE.md"


def _load_env() -> None:
    """Carga .env desde ubicaciones típicas (sin romper si no existe)."""
    here = Path(__file__).resolve()
    for p in (here.parent / ".env", here.parent.parent / ".env"):
        if p.exists():
            load_dotenv(p)
            return


def _parse_date(s: str) -> Optional[date]:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def _parse_decimal(s: str) -> Optional[Decimal]:
    try:
        return Decimal(str(s).strip())
    except (InvalidOperation, ValueError):
        return None


def leer_gastos(csv_path: Path) -> List[Gasto]:
    gastos: List[Gasto] = []

    with csv_path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for row in reader:
            gasto_id = (row.get("gasto_id") or "").strip()
            usuario_id = (row.get("usuario_id") or "").strip()
            moneda = (row.get("moneda") or "").strip().upper()
            estado = (row.get("estado") or "").strip().upper()

            fecha = _parse_date((row.get("fecha") or "").strip())
            monto = _parse_decimal(row.get("monto", ""))

            if not gasto_id or not usuario_id or not moneda or fecha is None or monto is None or estado not in ESTADOS:
                print(
                    f"[WARN] Saltando fila: gasto_id={gasto_id!r} "
                    f"fecha={row.get('fecha')!r} monto={row.get('monto')!r} estado={row.get('estado')!r}"
                )
                continue

            gastos.append(Gasto(
                id=gasto_id,
                usuario_id=usuario_id,
                monto=monto,
                moneda=moneda,
                categoria=(row.get("categoria") or "").strip(),
                descripcion=(row.get("descripcion") or "").strip(),
                fecha=fecha,
                estado=estado,
            ))

    return gastos


def write_report_md(path: Path, reporte: ReporteGastos) -> None:
    def fmt(valor: Decimal) -> str:
        return f"{valor.quantize(CENTAVOS)} {reporte.moneda}"

    lines: List[str] = []
    lines.append(f"# REPORTE DE GASTOS ({reporte.moneda})\n\n")

    lines.append("## 1) Resumen\n\n")
    lines.append(f"- Gastos recibidos: {reporte.total_gastos}\n")
    for estado, cantidad in reporte.por_estado.items():
        lines.append(f"- {estado}: {cantidad}\n")
    lines.append(f"- Aprobados con conversión válida: {reporte.convertidos} de {reporte.aprobados}\n")
    lines.append(f"- Total aprobado: {fmt(reporte.total)}\n")
    lines.append(f"- Promedio por gasto aprobado: {fmt(reporte.promedio)}\n")
    if reporte.no_convertibles:
        lines.append(f"- Sin tasa de cambio (excluidos): {', '.join(reporte.no_convertibles)}\n")

    lines.append("\n## 2) Por categoría\n\n")
    if not reporte.por_categoria:
        lines.append("No hay gastos aprobados.\n")
    for categoria, total in reporte.por_categoria:
        lines.append(f"- {categoria}: {fmt(total)}\n")

    lines.append("\n## 3) Por mes (últimos meses)\n\n")
    for mes, total in reporte.por_mes:
        lines.append(f"- {mes}: {fmt(total)}\n")

    lines.append("\n## 4) Empleados con mayor gasto\n\n")
    for posicion, (usuario_id, total) in enumerate(reporte.top_empleados, start=1):
        lines.append(f"{posicion}. {usuario_id}: {fmt(total)}\n")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(lines), encoding="utf-8")


def main(argv: Optional[List[str]] = None) -> int:
    _load_env()

    parser = argparse.ArgumentParser(description="Reporte de gastos por lotes")
    parser.add_argument("--csv", dest="csv_path", required=True, help="Ruta al CSV de gastos")
    parser.add_argument("--moneda", dest="moneda", default=EMPRESA.moneda_base, help="Moneda de reporte")
    parser.add_argument("--salida", dest="salida", default=DEFAULT_REPORT_MD, help="Ruta de salida REPORTE.md")
    args = parser.parse_args(argv)

    csv_path = Path(args.csv_path)
    if not csv_path.exists():
        print(f"[ERROR] No se encontró el CSV {csv_path}.")
        return 2

    gastos = leer_gastos(csv_path)
    normalizador = Normalizador(ProveedorTasas())
    reporte = construir_reporte(gastos, normalizador, args.moneda)

    print("\nDesglose por estado:")
    print(reporte.por_estado)
    print(f"Total aprobado: {reporte.total.quantize(CENTAVOS)} {reporte.moneda} ({reporte.convertidos} gastos)")
    if reporte.no_convertibles:
        print(f"[WARN] {len(reporte.no_convertibles)} gastos sin tasa de cambio hacia {reporte.moneda}")

    salida = Path(args.salida)
    write_report_md(salida, reporte)
    print(f"\n[OK] Escribí {salida}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
