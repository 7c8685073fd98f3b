import uuid

import mongomock
import pytest

from painel_dss.database import DocumentStore
from painel_dss.service import PainelService


class RecordingDispatcher:
    def __init__(self, fail=False):
        self.alerts = []
        self.fail = fail

    def send_unwell_alert(self, alert):
        if self.fail:
            raise RuntimeError("smtp down")
        self.alerts.append(alert)


@pytest.fixture
def store():
    return DocumentStore(mongomock.MongoClient()[f"painel_{uuid.uuid4().hex}"])


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(store, dispatcher):
    svc = PainelService(store, dispatcher=dispatcher)
    yield svc
    svc.view.stop()


@pytest.fixture
def employee(service):
    return service.add_employee("maria silva", "1001", is_admin=True)
