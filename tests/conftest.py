"""
Shared pytest fixtures for the ONVIF client tests.
"""
import pytest
from fastapi.testclient import TestClient

from onvif_camera_sim import create_app
from onvif_transport import TransportResult

SOAP_PROLOGUE = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://www.w3.org/2003/05/soap-envelope"'
    ' xmlns:tds="http://www.onvif.org/ver10/device/wsdl"'
    ' xmlns:tr2="http://www.onvif.org/ver20/media/wsdl"'
    ' xmlns:tt="http://www.onvif.org/ver10/schema">'
    '<SOAP-ENV:Body>'
)
SOAP_EPILOGUE = '</SOAP-ENV:Body></SOAP-ENV:Envelope>'


def soap(body: str) -> str:
    return SOAP_PROLOGUE + body + SOAP_EPILOGUE


class ScriptedTransport:
    """Transport answering with prepared results (or raising prepared errors) in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def post(self, url, headers, body, timeouts):
        self.calls.append({'url': url, 'headers': dict(headers), 'body': body})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class CameraSimTransport:
    """Transport posting into the simulated camera through FastAPI's TestClient."""

    def __init__(self, client: TestClient):
        self.client = client
        self.calls = []

    def post(self, url, headers, body, timeouts):
        self.calls.append({'url': url, 'headers': dict(headers), 'body': body})
        response = self.client.post(url, content=body.encode('utf-8'), headers=dict(headers))
        return TransportResult(
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=dict(response.headers),
            body=response.text,
        )


@pytest.fixture
def soap_envelope():
    return soap


@pytest.fixture
def ok():
    """Build a 200 result carrying ``body`` in a SOAP envelope."""
    def _ok(body: str) -> TransportResult:
        return TransportResult(200, 'OK', {'Content-Type': 'application/soap+xml'}, soap(body))
    return _ok


@pytest.fixture
def unauthorized():
    def _unauthorized(challenge='Digest realm="cam", nonce="abc123"', body='Unauthorized') -> TransportResult:
        headers = {} if challenge is None else {'WWW-Authenticate': challenge}
        return TransportResult(401, 'Unauthorized', headers, body)
    return _unauthorized


@pytest.fixture
def scripted():
    return ScriptedTransport


@pytest.fixture
def camera_client():
    return TestClient(create_app())


@pytest.fixture
def camera_transport(camera_client):
    return CameraSimTransport(camera_client)


@pytest.fixture
def camera_transport_factory():
    """Build a transport onto a simulated camera created with ``create_app(**options)``."""
    def _factory(**options) -> CameraSimTransport:
        return CameraSimTransport(TestClient(create_app(**options)))
    return _factory
