#!/usr/bin/env python3
"""
ONVIF SOAP response parsing.

Elements are matched on their local name only. Cameras disagree on the
prefixes (tds:, trt:, tr2:, none at all) and sometimes on the namespaces,
so a lookup for ``Uri`` finds ``<tt:Uri>`` and ``<tr2:Uri>`` alike.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlsplit

from onvif_errors import MalformedResponse, MissingField
from onvif_request import RequestType


@dataclass
class DeviceInformation:
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    firmware_version: Optional[str] = None
    serial_number: Optional[str] = None
    hardware_id: Optional[str] = None

    def __str__(self) -> str:
        return (f"Manufacturer: {self.manufacturer or '-'}, Model: {self.model or '-'}, "
                f"Firmware: {self.firmware_version or '-'}, Serial: {self.serial_number or '-'}, "
                f"Hardware ID: {self.hardware_id or '-'}")


@dataclass
class MediaProfile:
    """A stream configuration advertised by the camera."""

    token: str
    name: str = ''
    encoding: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def usable(self) -> bool:
        return bool(self.token)


def local_name(tag: Any) -> str:
    # Comments and processing instructions have non-string tags
    if not isinstance(tag, str):
        return ''
    return tag.split('}')[-1] if '}' in tag else tag


def _iter_named(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element.iter():
        if local_name(child.tag) == name:
            yield child


def _find(element: ET.Element, name: str) -> Optional[ET.Element]:
    return next(_iter_named(element, name), None)


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    text = element.text.strip()
    return text or None


def _int(element: Optional[ET.Element]) -> Optional[int]:
    text = _text(element)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def parse_xml(body: str) -> ET.Element:
    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise MalformedResponse(f"Unparsable XML: {e}")


def parse_services(body: str) -> Dict[str, str]:
    """
    Parse a GetServices response.

    Returns:
        Mapping of service namespace to the path part of its XAddr. The
        scheme and host are dropped because the configured device address
        is authoritative.
    """
    root = parse_xml(body)
    services = {}
    for service in _iter_named(root, 'Service'):
        namespace = _text(_child(service, 'Namespace'))
        xaddr = _text(_child(service, 'XAddr'))
        if not namespace or not xaddr:
            continue
        services[namespace] = urlsplit(xaddr).path or '/'
    return services


def parse_device_information(body: str) -> DeviceInformation:
    root = parse_xml(body)
    response = _find(root, 'GetDeviceInformationResponse')
    if response is None:
        raise MissingField('GetDeviceInformationResponse')

    return DeviceInformation(
        manufacturer=_text(_find(response, 'Manufacturer')),
        model=_text(_find(response, 'Model')),
        firmware_version=_text(_find(response, 'FirmwareVersion')),
        serial_number=_text(_find(response, 'SerialNumber')),
        hardware_id=_text(_find(response, 'HardwareId')),
    )


def _parse_profile(element: ET.Element) -> MediaProfile:
    profile = MediaProfile(
        token=element.get('token', '').strip(),
        name=_text(_child(element, 'Name')) or '',
    )

    # Media2 nests it under Configurations, Media1 puts it on the profile
    encoder = _find(element, 'VideoEncoder')
    if encoder is None:
        encoder = _find(element, 'VideoEncoderConfiguration')
    if encoder is not None:
        profile.encoding = _text(_child(encoder, 'Encoding'))
        resolution = _child(encoder, 'Resolution')
        if resolution is not None:
            profile.width = _int(_child(resolution, 'Width'))
            profile.height = _int(_child(resolution, 'Height'))

    return profile


def parse_profiles(body: str) -> List[MediaProfile]:
    """Parse a GetProfiles response. No profiles at all is a valid answer."""
    root = parse_xml(body)
    return [_parse_profile(element) for element in _iter_named(root, 'Profiles')]


def parse_stream_uri(body: str) -> str:
    root = parse_xml(body)
    uri = _text(_find(root, 'Uri'))
    if uri is None:
        raise MissingField('Uri')
    return uri


_PARSERS = {
    RequestType.GET_SERVICES: parse_services,
    RequestType.GET_DEVICE_INFORMATION: parse_device_information,
    RequestType.GET_PROFILES: parse_profiles,
    RequestType.GET_STREAM_URI: parse_stream_uri,
}


def parse_response(kind: RequestType, body: str) -> Any:
    """Parse ``body`` as the response to ``kind``, raising ParseError on failure."""
    return _PARSERS[kind](body)
