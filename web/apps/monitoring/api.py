from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from apps.orders.http_adapters import HttpCatalogClient


def health_view(_request):
    components = {}

    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception:
        db_ok = False
    components["db"] = {"ok": db_ok}

    # the catalog is only a dependency when it runs out of process
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        components["catalog"] = {"ok": HttpCatalogClient().ping()}

    ok = all(c["ok"] for c in components.values())
    return JsonResponse(
        {"ok": ok, "components": components},
        status=200 if ok else 503,
    )
