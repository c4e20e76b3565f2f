import asyncio
import json
from typing import Any, Dict, Generator, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from eventpass.config import (
    API_BASE_URL,
    PAYMENT_STATUS_PATH,
    REGISTER_PATH,
    TICKET_EMAIL_PATH,
    TICKETS_BY_ORDER_PATH,
    VERIFY_TOKEN_PATH,
)
from eventpass.payments.models import Err, ErrorKind, Ok
from eventpass.purchases.service import PurchaseRegistry
from eventpass.registrations.builder import RegistrationBuilder
from eventpass.registrations.models import EventDetail, RatePlan

SECRET = "pi_123_secret_abc"


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def _no_rate_limiter(monkeypatch):
    # Pas de Redis pendant les tests
    monkeypatch.setenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)


@pytest.fixture
def adult_rate() -> RatePlan:
    return RatePlan(id="adult", label="Adulte", unit_price_cents=5000)


@pytest.fixture
def child_rate() -> RatePlan:
    return RatePlan(id="child", label="Enfant", unit_price_cents=2500)


@pytest.fixture
def paid_event(adult_rate, child_rate) -> EventDetail:
    return EventDetail(
        id="evt-1",
        name="Holi Festival",
        is_paid=True,
        country_id="us",
        currency_code="usd",
        rate_plans=[adult_rate, child_rate],
    )


@pytest.fixture
def free_event() -> EventDetail:
    return EventDetail(id="evt-free", name="Meetup", is_paid=False, country_id="us", currency_code="usd")


@pytest.fixture
def builder(paid_event) -> RegistrationBuilder:
    return RegistrationBuilder(paid_event, display_name="Asha")


class FakeTicketingApi:
    """
    Backend de billetterie simulé (httpx.MockTransport).
    - responses[path] = (status_code, json) surcharge la réponse par défaut
    - calls: liste (path, corps JSON, en-têtes) dans l'ordre des appels
    """

    def __init__(self) -> None:
        self.responses: Dict[str, Tuple[int, Any]] = {
            VERIFY_TOKEN_PATH: (200, {"message": "valid"}),
            REGISTER_PATH: (200, {"isOk": True, "clientSecret": SECRET, "data": [{"orderId": "ord-1"}]}),
            PAYMENT_STATUS_PATH: (200, {"isOk": True, "orderId": "ord-1"}),
            TICKET_EMAIL_PATH: (200, {"isOk": True, "message": "Billets envoyés"}),
            TICKETS_BY_ORDER_PATH: (200, {"data": [{"_id": "t1", "token": "tok-1", "name": "Asha"}]}),
        }
        self.calls: List[Tuple[str, Any, Dict[str, str]]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.url.path, body, dict(request.headers)))
        status, payload = self.responses.get(request.url.path, (404, {"message": "not found"}))
        if isinstance(payload, Exception):
            raise payload
        return httpx.Response(status, json=payload)

    def paths(self) -> List[str]:
        return [path for path, _, _ in self.calls]

    def bodies(self, path: str) -> List[Any]:
        return [body for p, body, _ in self.calls if p == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url=API_BASE_URL)


@pytest.fixture
def ticketing_api() -> FakeTicketingApi:
    return FakeTicketingApi()


class FakeProcessor:
    """
    Processeur de paiement simulé.
    - payment_method "pm_3ds": attend un retour de redirection (ou cancel())
    - payment_method None: fermeture de la feuille
    """

    def __init__(self, payment_method: Optional[str] = None) -> None:
        self.payment_method = payment_method
        self.next_action_url: Optional[str] = None
        self.init_calls: List[Tuple[str, str, str]] = []
        self.fetch_result = Ok("succeeded")
        self._redirect: Optional[asyncio.Future] = None

    async def init_session(self, client_secret, display_name, return_url):
        self.init_calls.append((client_secret, display_name, return_url))
        return Ok("pi_123")

    async def present_session(self):
        if not self.payment_method:
            return Err(ErrorKind.CANCELED, "Paiement annulé")
        if self.payment_method == "pm_3ds":
            self.next_action_url = "https://hooks.stripe.test/3ds"
            self._redirect = asyncio.get_running_loop().create_future()
            completed = await self._redirect
            self.next_action_url = None
            if not completed:
                return Err(ErrorKind.CANCELED, "Paiement annulé")
        return Ok("succeeded")

    async def handle_redirect_callback(self, url: str) -> bool:
        if self._redirect and not self._redirect.done():
            self._redirect.set_result(True)
            return True
        return False

    def cancel(self) -> bool:
        if self._redirect and not self._redirect.done():
            self._redirect.set_result(False)
            return True
        return False

    async def fetch_status(self, client_secret):
        return self.fetch_result


@pytest.fixture(scope="session")
def app():
    from eventpass.app import app as fastapi_app
    return fastapi_app


@pytest.fixture()
def client(app, ticketing_api) -> Generator[TestClient, None, None]:
    """
    TestClient dont le registre d'achats parle au backend simulé
    et au processeur simulé (aucun appel réseau ni Stripe).
    """
    with TestClient(app) as c:
        app.state.purchases = PurchaseRegistry(ticketing_api.client(), processor_factory=FakeProcessor)
        yield c
