"""Tests for the lock -> write -> unlock -> activate workflow."""

import httpx
import pytest

from abaper.exceptions import AbaperError, ObjectLockedError, ServerError
from abaper.object_types import ObjectReference
from abaper.workflow import SourceMutationWorkflow, activation_payload, source_content_type

from conftest import BASE, LOCK_ENVELOPE

PROGRAM_PATH = "/programs/programs/ztest"
SOURCE_PATH = PROGRAM_PATH + "/source/main"
SOURCE = "REPORT ztest.\nWRITE 'Hello'.\n"

ACTIVATION_LOG = """<?xml version="1.0" encoding="utf-8"?>
<chkl:messages xmlns:chkl="http://www.sap.com/abapxml/checklist">
  <msg objDescr="Program ZTEST" type="W" line="2" href="/sap/bc/adt/programs/programs/ztest/source/main#start=2,0">
    <shortText><txt>Unused variable LV_X</txt></shortText>
  </msg>
</chkl:messages>"""


@pytest.fixture
def workflow(client):
    return SourceMutationWorkflow(client.http_client, client.session)


@pytest.fixture
def ref():
    return ObjectReference.create("program", "ZTEST")


def _sequence(fake_adt):
    steps = []
    for r in fake_adt.requests:
        if r.url.path.startswith(BASE + PROGRAM_PATH) or r.url.path == BASE + "/activation":
            steps.append(r.url.params.get("_action") or r.method)
    return steps


class TestSetSource:
    def test_successful_update(self, workflow, ref, fake_adt):
        result = workflow.set_source(ref, SOURCE)

        assert _sequence(fake_adt) == ["LOCK", "PUT", "UNLOCK"]
        [put] = fake_adt.calls("PUT", SOURCE_PATH)
        assert put.url.params["lockHandle"] == "LH-0001"
        assert "corrNr" not in put.url.params
        assert put.headers["content-type"] == "text/plain; charset=utf-8"
        assert put.content.decode("utf-8") == SOURCE
        assert result.object_name == "ZTEST"
        assert result.activated is False
        assert result.unlock_error is None

    def test_transport_number_is_forwarded(self, workflow, ref, fake_adt):
        fake_adt.lock_body = LOCK_ENVELOPE.format(token="LH-7", transport="DEVK900042")

        workflow.set_source(ref, SOURCE)

        [put] = fake_adt.calls("PUT", SOURCE_PATH)
        assert put.url.params["corrNr"] == "DEVK900042"

    def test_put_failure_unlocks_once_and_raises_put_error(self, workflow, ref, fake_adt):
        fake_adt.put_status = 500

        with pytest.raises(ServerError) as excinfo:
            workflow.set_source(ref, SOURCE)

        assert len(fake_adt.calls("POST", PROGRAM_PATH, "UNLOCK")) == 1
        assert "source" in str(excinfo.value)
        assert excinfo.value.body == "syntax error in line 1"
        assert excinfo.value.secondary_errors == []

    def test_unlock_failure_does_not_mask_put_error(self, workflow, ref, fake_adt):
        fake_adt.put_status = 500
        fake_adt.unlock_status = 400

        with pytest.raises(ServerError) as excinfo:
            workflow.set_source(ref, SOURCE)

        assert len(fake_adt.calls("POST", PROGRAM_PATH, "UNLOCK")) == 1
        [secondary] = excinfo.value.secondary_errors
        assert "unlock" in str(secondary)

    def test_unlock_failure_after_success_is_reported(self, workflow, ref, fake_adt):
        fake_adt.unlock_status = 500

        result = workflow.set_source(ref, SOURCE)

        assert isinstance(result.unlock_error, AbaperError)

    def test_untyped_unlock_failure_does_not_mask_put_error(self, workflow, ref, fake_adt):
        fake_adt.put_status = 500
        self._break_unlock(fake_adt)

        with pytest.raises(ServerError) as excinfo:
            workflow.set_source(ref, SOURCE)

        [secondary] = excinfo.value.secondary_errors
        assert isinstance(secondary, AbaperError)
        assert isinstance(secondary.__cause__, RuntimeError)
        assert "unlock" in str(secondary)

    def test_untyped_unlock_failure_after_success_is_reported(self, workflow, ref, fake_adt):
        self._break_unlock(fake_adt)

        result = workflow.set_source(ref, SOURCE)

        assert isinstance(result.unlock_error, AbaperError)
        assert "connection reset" in str(result.unlock_error)

    @staticmethod
    def _break_unlock(fake_adt):
        def handler(request):
            if request.url.params.get("_action") == "LOCK":
                return httpx.Response(200, text=fake_adt.lock_body)
            raise RuntimeError("connection reset")

        fake_adt.route("POST", PROGRAM_PATH, handler)

    def test_unexpected_exception_still_unlocks(self, workflow, ref, fake_adt):
        def explode(request):
            raise RuntimeError("aborted")

        fake_adt.route("PUT", SOURCE_PATH, explode)

        with pytest.raises(RuntimeError):
            workflow.set_source(ref, SOURCE)

        assert len(fake_adt.calls("POST", PROGRAM_PATH, "UNLOCK")) == 1

    def test_lock_failure_skips_put_and_unlock(self, workflow, ref, fake_adt):
        fake_adt.route("POST", PROGRAM_PATH, lambda r: httpx.Response(409, text="locked by OTHERDEV"))

        with pytest.raises(ObjectLockedError):
            workflow.set_source(ref, SOURCE)

        assert fake_adt.calls("PUT", SOURCE_PATH) == []
        assert len(fake_adt.calls("POST", PROGRAM_PATH)) == 1

    def test_xml_payload_content_type(self, workflow, ref, fake_adt):
        workflow.set_source(ref, '<?xml version="1.0"?><root/>')

        [put] = fake_adt.calls("PUT", SOURCE_PATH)
        assert put.headers["content-type"] == "application/xml"


class TestActivation:
    def test_activation_after_unlock(self, workflow, ref, fake_adt):
        fake_adt.activation_body = ACTIVATION_LOG

        result = workflow.set_source(ref, SOURCE, activate=True)

        assert _sequence(fake_adt) == ["LOCK", "PUT", "UNLOCK", "POST"]
        assert result.activated is True
        [message] = result.messages
        assert message.severity == "W"
        assert message.text == "Unused variable LV_X"

        [activation] = fake_adt.calls("POST", "/activation")
        assert activation.url.params["method"] == "activate"
        assert b'adtcore:uri="/sap/bc/adt/programs/programs/ztest"' in activation.content

    def test_activation_failure_is_raised(self, workflow, ref, fake_adt):
        fake_adt.activation_status = 500

        with pytest.raises(ServerError, match="activate"):
            workflow.set_source(ref, SOURCE, activate=True)

        assert len(fake_adt.calls("PUT", SOURCE_PATH)) == 1
        assert len(fake_adt.calls("POST", PROGRAM_PATH, "UNLOCK")) == 1

    def test_unreadable_activation_log_is_ignored(self, workflow, ref, fake_adt):
        fake_adt.activation_body = "<not-closed"

        result = workflow.set_source(ref, SOURCE, activate=True)

        assert result.activated is True
        assert result.messages == []


def test_source_content_type():
    assert source_content_type("REPORT z.") == "text/plain; charset=utf-8"
    assert source_content_type("  <?xml version='1.0'?><a/>") == "application/xml"


def test_activation_payload_escapes_names():
    ref = ObjectReference.create("class", "ZCL_A&B")

    payload = activation_payload(ref)

    assert "ZCL_A&amp;B" in payload
    assert 'adtcore:uri="/sap/bc/adt/oo/classes/zcl_a%26b"' in payload
