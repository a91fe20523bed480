"""Shared fixtures: an in-memory ADT server behind httpx.MockTransport."""

import base64
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from abaper.client import AdtClient
from abaper.models import ConnectionProfile

HOST = "sap.example.com:8000"
BASE = "/sap/bc/adt"
USERNAME = "DEVELOPER"
PASSWORD = "s3cr3t-Pa55"
TOKEN = "csrf-token-0123456789"

LOCK_ENVELOPE = """<?xml version="1.0" encoding="utf-8"?>
<asx:abap xmlns:asx="http://www.sap.com/abapxml" version="1.0">
  <asx:values>
    <DATA>
      <LOCK_HANDLE>{token}</LOCK_HANDLE>
      <CORRNR>{transport}</CORRNR>
      <CORRUSER>DEVELOPER</CORRUSER>
      <IS_LOCAL>X</IS_LOCAL>
    </DATA>
  </asx:values>
</asx:abap>"""

LOCK_REFERENCE = """<?xml version="1.0" encoding="utf-8"?>
<adtcore:objectReferences xmlns:adtcore="http://www.sap.com/adt/core">
  <adtcore:objectReference adtcore:uri="/sap/bc/adt/programs/programs/ztest"
                           adtcore:name="ZTEST" lockHandle="{token}" corrNr="{transport}"/>
</adtcore:objectReferences>"""

Handler = Callable[[httpx.Request], httpx.Response]


class FakeAdt:
    """Just enough of an ADT server to log on, lock, write, unlock and activate."""

    def __init__(self, username: str = USERNAME, password: str = PASSWORD, token: str = TOKEN):
        self.username = username
        self.password = password
        self.token = token
        self.requests: List[httpx.Request] = []
        self.overrides: Dict[Tuple[str, str], Handler] = {}
        self.lock_body = LOCK_ENVELOPE.format(token="LH-0001", transport="")
        self.put_status = 200
        self.unlock_status = 200
        self.activation_status = 200
        self.activation_body = ""

    def route(self, method: str, path: str, handler: Handler) -> None:
        self.overrides[(method, BASE + path)] = handler

    def calls(self, method: str, path: str, action: Optional[str] = None) -> List[httpx.Request]:
        full = BASE + path
        return [
            r for r in self.requests
            if r.method == method and r.url.path == full
            and (action is None or r.url.params.get("_action") == action)
        ]

    def _authorized(self, request: httpx.Request) -> bool:
        expected = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return request.headers.get("authorization") == f"Basic {expected}"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key in self.overrides:
            return self.overrides[key](request)

        path = request.url.path
        if request.method == "HEAD" and path == "/":
            return httpx.Response(200, headers={"server": "SAP NetWeaver Application Server"})
        if not self._authorized(request):
            return httpx.Response(401, text="Logon failed")

        if request.method in ("GET", "HEAD") and path in (BASE + "/core/info/system", BASE + "/discovery",
                                                          BASE + "/compatibility/graph"):
            if request.headers.get("x-csrf-token") == "Fetch":
                return httpx.Response(200, headers={"x-csrf-token": self.token}, text="<app:service/>")
            return httpx.Response(200, text="<app:service/>")

        if request.method != "GET" and request.headers.get("x-csrf-token") != self.token:
            return httpx.Response(403, text="CSRF token validation failed",
                                  headers={"x-csrf-token": "Required"})

        action = request.url.params.get("_action")
        if request.method == "POST" and action == "LOCK":
            return httpx.Response(200, text=self.lock_body)
        if request.method == "POST" and action == "UNLOCK":
            return httpx.Response(self.unlock_status, text="" if self.unlock_status < 300 else "unlock failed")
        if request.method == "PUT" and path.endswith("/source/main"):
            return httpx.Response(self.put_status, text="" if self.put_status < 300 else "syntax error in line 1")
        if request.method == "POST" and path == BASE + "/activation":
            return httpx.Response(self.activation_status, text=self.activation_body)
        return httpx.Response(404, text="Resource not found")


@pytest.fixture
def fake_adt() -> FakeAdt:
    return FakeAdt()


@pytest.fixture
def profile() -> ConnectionProfile:
    return ConnectionProfile(host=HOST, username=USERNAME, password=PASSWORD,
                             connect_timeout=5.0, request_timeout=60.0)


@pytest.fixture
def make_client(fake_adt, profile):
    """Build clients wired to the fake server; closes them afterwards."""
    clients = []

    def _make(p: Optional[ConnectionProfile] = None, authenticate: bool = True) -> AdtClient:
        client = AdtClient(p or profile, transport=httpx.MockTransport(fake_adt))
        clients.append(client)
        if authenticate:
            client.authenticate()
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def client(make_client) -> AdtClient:
    return make_client()
