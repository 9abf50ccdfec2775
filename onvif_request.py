#!/usr/bin/env python3
"""
ONVIF SOAP request building.

Commands are assembled as ElementTree elements and serialized to text, then
wrapped in a fixed SOAP 1.2 envelope. The operation element declares its
WSDL namespace as the default namespace so its children need no prefix.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from onvif_config import DEVICE_WSDL_NS, MEDIA2_WSDL_NS, SOAP_ENV_NS

SOAP_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    f'<s:Envelope xmlns:s="{SOAP_ENV_NS}">'
    '<s:Body>'
)
ENVELOPE_END = '</s:Body></s:Envelope>'


class RequestType(Enum):
    GET_SERVICES = 'GetServices'
    GET_DEVICE_INFORMATION = 'GetDeviceInformation'
    GET_PROFILES = 'GetProfiles'
    GET_STREAM_URI = 'GetStreamUri'

    def namespace(self) -> str:
        if self in (RequestType.GET_SERVICES, RequestType.GET_DEVICE_INFORMATION):
            return DEVICE_WSDL_NS
        return MEDIA2_WSDL_NS

    def __str__(self) -> str:
        return self.value


def _element(name: str, namespace: str, children: List[Tuple[str, str]]) -> ET.Element:
    command = ET.Element(name, {'xmlns': namespace})
    for tag, text in children:
        ET.SubElement(command, tag).text = text
    return command


def build_command(kind: RequestType, profile_token: Optional[str] = None) -> str:
    """
    Build the body fragment for one operation.

    Args:
        kind: The operation to build
        profile_token: Media profile token, required for GetStreamUri

    Returns:
        The serialized operation element, without envelope
    """
    if kind is RequestType.GET_SERVICES:
        children = [('IncludeCapability', 'false')]
    elif kind is RequestType.GET_DEVICE_INFORMATION:
        children = []
    elif kind is RequestType.GET_PROFILES:
        children = [('Type', 'All')]
    elif kind is RequestType.GET_STREAM_URI:
        if not profile_token:
            raise ValueError("GetStreamUri requires a non-empty profile token")
        children = [('Protocol', 'RTSP'), ('ProfileToken', profile_token)]
    else:
        raise ValueError(f"Unsupported request type: {kind}")

    return ET.tostring(_element(kind.value, kind.namespace(), children), encoding='unicode')


def wrap_envelope(command: str) -> str:
    return SOAP_HEADER + command + ENVELOPE_END


@dataclass(frozen=True)
class OnvifRequest:
    """One outbound operation: its type and the command to put in the body."""

    type: RequestType
    xml_command: str

    @property
    def namespace(self) -> str:
        return self.type.namespace()

    @classmethod
    def create(cls, kind: RequestType, profile_token: Optional[str] = None) -> 'OnvifRequest':
        return cls(kind, build_command(kind, profile_token))

    def envelope(self) -> str:
        return wrap_envelope(self.xml_command)
