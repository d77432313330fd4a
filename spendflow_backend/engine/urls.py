from django.urls import path

from engine import views

urlpatterns = [
    path("gastos/", views.gastos_api, name="gastos"),
    path("gastos/<str:gasto_id>/decision/", views.decision_api, name="decision"),
    path("reportes/", views.reporte_api, name="reporte"),
    path("usuarios/", views.usuarios_api, name="usuarios"),
    path("monedas/", views.monedas_api, name="monedas"),
]
