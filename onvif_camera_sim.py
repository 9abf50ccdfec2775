#!/usr/bin/env python3
"""
Simulated ONVIF camera.

A FastAPI application answering the four operations the client uses
(GetServices, GetDeviceInformation, GetProfiles, GetStreamUri) behind HTTP
Digest authentication. Unauthenticated requests get a 401 carrying a fresh
WWW-Authenticate challenge, like most real cameras.

    uvicorn onvif_camera_sim:app --port 8000
"""

import hmac
import logging
import secrets
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from onvif_config import DEVICE_WSDL_NS, MEDIA2_WSDL_NS, SOAP_ENV_NS
from onvif_digest import ALGORITHMS, DigestChallenge, compute_digest_response, parse_digest_params
from onvif_parse import local_name

logger = logging.getLogger(__name__)

DEVICE_SERVICE_PATH = '/onvif/device_service'
MEDIA2_SERVICE_PATH = '/onvif/media2_service'
MEDIA_SERVICE_PATH = '/onvif/media_service'
PTZ_SERVICE_PATH = '/onvif/ptz_service'

MEDIA_WSDL_NS = 'http://www.onvif.org/ver10/media/wsdl'
PTZ_WSDL_NS = 'http://www.onvif.org/ver20/ptz/wsdl'
SCHEMA_NS = 'http://www.onvif.org/ver10/schema'

SOAP_MEDIA_TYPE = 'application/soap+xml; charset=utf-8'

# Challenges issued but not yet answered; the oldest are dropped first
MAX_PENDING_NONCES = 256

DEVICE_ACTIONS = ('GetServices', 'GetDeviceInformation')
MEDIA2_ACTIONS = ('GetProfiles', 'GetStreamUri')

# Device configuration
DEVICE_CONFIG = {
    'manufacturer': 'ONVIF Simulator',
    'model': 'FastAPI Camera',
    'firmware_version': '1.0.0',
    'serial_number': 'ONVIF-001',
    'hardware_id': 'HW-001'
}

# Media profiles
MEDIA_PROFILES = {
    'Profile_1': {
        'name': 'Main Stream',
        'encoding': 'H264',
        'resolution': {'width': 1920, 'height': 1080},
    },
    'Profile_2': {
        'name': 'Sub Stream',
        'encoding': 'H264',
        'resolution': {'width': 640, 'height': 480},
    }
}

USERS = {
    'admin': 'admin123',
    'user': 'user123',
}


def create_soap_response(body_content: str) -> str:
    return f'''<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="{SOAP_ENV_NS}" xmlns:tds="{DEVICE_WSDL_NS}" xmlns:tr2="{MEDIA2_WSDL_NS}" xmlns:tt="{SCHEMA_NS}">
    <soap:Body>{body_content}
    </soap:Body>
</soap:Envelope>'''


def create_soap_fault(fault_code: str, fault_string: str) -> str:
    return f'''<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:soap="{SOAP_ENV_NS}">
    <soap:Body>
        <soap:Fault>
            <soap:Code>
                <soap:Value>soap:{fault_code}</soap:Value>
            </soap:Code>
            <soap:Reason>
                <soap:Text xml:lang="en">{fault_string}</soap:Text>
            </soap:Reason>
        </soap:Fault>
    </soap:Body>
</soap:Envelope>'''


def parse_soap_request(xml_content: str) -> Dict[str, Any]:
    """Extract the action element from the SOAP body"""
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError:
        return {'action': None, 'element': None}

    for element in root.iter():
        if local_name(element.tag) == 'Body':
            for child in element:
                return {'action': local_name(child.tag), 'element': child}
    return {'action': None, 'element': None}


def _child_text(element: Optional[ET.Element], name: str) -> Optional[str]:
    if element is None:
        return None
    for child in element.iter():
        if local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def services_body(base_url: str) -> str:
    services = [
        (DEVICE_WSDL_NS, DEVICE_SERVICE_PATH),
        (MEDIA_WSDL_NS, MEDIA_SERVICE_PATH),
        (MEDIA2_WSDL_NS, MEDIA2_SERVICE_PATH),
        (PTZ_WSDL_NS, PTZ_SERVICE_PATH),
    ]
    entries = ''.join(f'''
            <tds:Service>
                <tds:Namespace>{namespace}</tds:Namespace>
                <tds:XAddr>{base_url}{path}</tds:XAddr>
                <tds:Version>
                    <tt:Major>2</tt:Major>
                    <tt:Minor>5</tt:Minor>
                </tds:Version>
            </tds:Service>''' for namespace, path in services)
    return f'''
        <tds:GetServicesResponse>{entries}
        </tds:GetServicesResponse>'''


def device_information_body(config: Dict[str, str]) -> str:
    return f'''
        <tds:GetDeviceInformationResponse>
            <tds:Manufacturer>{config['manufacturer']}</tds:Manufacturer>
            <tds:Model>{config['model']}</tds:Model>
            <tds:FirmwareVersion>{config['firmware_version']}</tds:FirmwareVersion>
            <tds:SerialNumber>{config['serial_number']}</tds:SerialNumber>
            <tds:HardwareId>{config['hardware_id']}</tds:HardwareId>
        </tds:GetDeviceInformationResponse>'''


def profiles_body(profiles: Dict[str, Dict[str, Any]]) -> str:
    profiles_xml = ''
    for token, profile in profiles.items():
        resolution = profile['resolution']
        profiles_xml += f'''
            <tr2:Profiles token="{token}" fixed="true">
                <tr2:Name>{profile['name']}</tr2:Name>
                <tr2:Configurations>
                    <tr2:VideoEncoder token="VideoEncoder_{token}" GovLength="30" Profile="Main">
                        <tt:Name>{profile['name']} Video Encoder</tt:Name>
                        <tt:UseCount>1</tt:UseCount>
                        <tt:Encoding>{profile['encoding']}</tt:Encoding>
                        <tt:Resolution>
                            <tt:Width>{resolution['width']}</tt:Width>
                            <tt:Height>{resolution['height']}</tt:Height>
                        </tt:Resolution>
                    </tr2:VideoEncoder>
                </tr2:Configurations>
            </tr2:Profiles>'''
    return f'''
        <tr2:GetProfilesResponse>{profiles_xml}
        </tr2:GetProfilesResponse>'''


def stream_uri_body(host: str, rtsp_port: int, token: str) -> str:
    return f'''
        <tr2:GetStreamUriResponse>
            <tr2:Uri>rtsp://{host}:{rtsp_port}/stream/{token}</tr2:Uri>
        </tr2:GetStreamUriResponse>'''


def create_app(users: Optional[Dict[str, str]] = None,
               profiles: Optional[Dict[str, Dict[str, Any]]] = None,
               device_config: Optional[Dict[str, str]] = None,
               realm: str = 'ONVIF Camera',
               qop: Optional[str] = 'auth',
               rtsp_port: int = 554) -> FastAPI:
    """
    Build a simulated camera.

    Args:
        users: username -> password accepted by the Digest check
        profiles: token -> profile description served by GetProfiles
        device_config: GetDeviceInformation fields
        realm: Digest realm
        qop: Digest qop offered in challenges, None for RFC 2069 style
        rtsp_port: Port put in the returned stream URIs
    """
    users = USERS if users is None else users
    profiles = MEDIA_PROFILES if profiles is None else profiles
    device_config = device_config or DEVICE_CONFIG

    app = FastAPI(title="Simulated ONVIF Camera", version="1.0.0")
    app.state.nonces = {}

    def challenge_response() -> Response:
        nonce = secrets.token_hex(16)
        nonces = app.state.nonces
        nonces[nonce] = None
        while len(nonces) > MAX_PENDING_NONCES:
            del nonces[next(iter(nonces))]
        challenge = f'Digest realm="{realm}", nonce="{nonce}", algorithm=MD5'
        if qop:
            challenge += f', qop="{qop}"'
        fault = create_soap_fault("Sender", "Authentication failed")
        return Response(content=fault, media_type=SOAP_MEDIA_TYPE, status_code=401,
                        headers={'WWW-Authenticate': challenge})

    def authenticate(request: Request) -> Optional[str]:
        """Return the authenticated username, or None"""
        header = request.headers.get('authorization', '')
        if not header.lower().startswith('digest '):
            return None

        params = parse_digest_params(header[len('digest '):])
        username = params.get('username')
        nonce = params.get('nonce')
        if username not in users or nonce not in app.state.nonces:
            return None
        if (params.get('algorithm') or 'MD5').upper() not in ALGORITHMS:
            return None
        if params.get('uri') != request.url.path:
            return None

        challenge = DigestChallenge(realm=realm, nonce=nonce, qop=params.get('qop'),
                                    algorithm=params.get('algorithm'))
        expected = compute_digest_response(challenge, request.method, params['uri'],
                                           username, users[username],
                                           params.get('nc', ''), params.get('cnonce', ''))
        if not hmac.compare_digest(expected, params.get('response', '')):
            return None
        # Each nonce authenticates a single request
        del app.state.nonces[nonce]
        return username

    def unsupported(action: Optional[str]) -> Response:
        fault = create_soap_fault("Receiver", f"Unsupported action: {action}")
        return Response(content=fault, media_type=SOAP_MEDIA_TYPE, status_code=400)

    async def dispatch(request: Request, actions) -> Response:
        if authenticate(request) is None:
            return challenge_response()

        soap_request = parse_soap_request((await request.body()).decode('utf-8'))
        action = soap_request['action']
        logger.info("%s: %s", request.url.path, action)

        if action not in actions:
            return unsupported(action)

        if action == 'GetServices':
            body_content = services_body(str(request.base_url).rstrip('/'))
        elif action == 'GetDeviceInformation':
            body_content = device_information_body(device_config)
        elif action == 'GetProfiles':
            body_content = profiles_body(profiles)
        else:
            token = _child_text(soap_request['element'], 'ProfileToken')
            if token not in profiles:
                fault = create_soap_fault("Sender", f"No such profile: {token}")
                return Response(content=fault, media_type=SOAP_MEDIA_TYPE, status_code=400)
            body_content = stream_uri_body(request.url.hostname or 'localhost', rtsp_port, token)

        return Response(content=create_soap_response(body_content), media_type=SOAP_MEDIA_TYPE)

    # Device Management Service, also answering media calls made before GetServices
    @app.post(DEVICE_SERVICE_PATH)
    async def device_service(request: Request):
        return await dispatch(request, DEVICE_ACTIONS + MEDIA2_ACTIONS)

    # Media2 Service
    @app.post(MEDIA2_SERVICE_PATH)
    async def media2_service(request: Request):
        return await dispatch(request, MEDIA2_ACTIONS)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "Simulated ONVIF Camera"}

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("Starting simulated ONVIF camera...")
    print("Default credentials:")
    for username, password in USERS.items():
        print(f"  Username: {username}, Password: {password}")
    print(f"\nDevice Service: http://localhost:8000{DEVICE_SERVICE_PATH}")
    print(f"Media2 Service: http://localhost:8000{MEDIA2_SERVICE_PATH}")
    uvicorn.run(app, host="0.0.0.0", port=8000)
