from engine.models import ROL_ADMIN, ROL_MANAGER, Empresa

POLITICA = {
    "moneda_base": "USD",
    # Orden de escalamiento: Empleado -> Manager -> Admin
    "flujo_aprobacion": [ROL_MANAGER, ROL_ADMIN],
    "categorias": [
        "Meals & Entertainment",
        "Travel",
        "Office Supplies",
        "Software",
        "Other",
    ],
    "tasas": {
        "vigencia_segundos": 60 * 60,  # 1 hora desde la consulta
        "timeout_segundos": 10,  # EXCHANGE_RATE_TIMEOUT lo reemplaza
        "max_consultas_paralelas": 4,
    },
    "reportes": {
        "meses_recientes": 6,
        "top_empleados": 5,
    },
}

EMPRESA = Empresa(id="comp-1", nombre="Innovate Corp", moneda_base=POLITICA["moneda_base"])
