from django.urls import include, path

from apps.monitoring.api import health_view

urlpatterns = [
    # probed by the container orchestrator; no authentication
    path("health/", health_view, name="health"),
    path("api/orders/", include("apps.orders.urls")),
]
