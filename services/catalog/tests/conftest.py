import os
import tempfile

# repo builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "catalog.db"))

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def api():
    from main import app
    from repo import ProductRow, get_session

    with TestClient(app) as c:
        yield c
    with get_session() as s:
        s.query(ProductRow).delete()
        s.commit()


@pytest.fixture
def catalog_repo(api):
    from repo import CatalogRepo
    return CatalogRepo()
