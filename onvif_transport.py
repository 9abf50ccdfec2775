#!/usr/bin/env python3
"""
HTTP transport for ONVIF requests.

The device session only needs a POST that returns status, headers and body.
Anything with a ``post`` method matching ``Transport`` can be plugged in;
``RequestsTransport`` is the default.
"""

import codecs
import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol

import requests

from onvif_config import Timeouts
from onvif_errors import NetworkError

logger = logging.getLogger(__name__)

XML_DECLARATION_ENCODING = re.compile(rb'\s*<\?xml[^>]*?encoding\s*=\s*["\']([A-Za-z][A-Za-z0-9._-]*)["\']')


@dataclass
class TransportResult:
    status_code: int
    reason: str = ''
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ''

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        value = self.headers.get(name)
        if value is not None:
            return value
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Transport(Protocol):
    def post(self, url: str, headers: Mapping[str, str], body: str,
             timeouts: Timeouts) -> TransportResult:
        ...


class RequestsTransport:
    """POST over a shared requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None, verify: bool = True):
        self.session = session or requests.Session()
        self.verify = verify

    def post(self, url: str, headers: Mapping[str, str], body: str,
             timeouts: Timeouts) -> TransportResult:
        try:
            response = self.session.post(
                url,
                data=body.encode('utf-8'),
                headers=dict(headers),
                timeout=timeouts.as_tuple(),
                verify=self.verify,
            )
        except requests.RequestException as e:
            logger.warning("POST %s failed: %s", url, e)
            raise NetworkError(str(e)) from e

        return TransportResult(
            status_code=response.status_code,
            reason=response.reason or '',
            headers=response.headers,
            body=decode_body(response.content, response.headers.get('Content-Type')),
        )

    def close(self):
        self.session.close()


def decode_body(content: bytes, content_type: Optional[str] = None) -> str:
    """
    Decode a response body.

    The encoding named in the XML declaration wins, then the charset of the
    Content-Type header, then UTF-8. Undecodable bytes are replaced.
    """
    if content.startswith(codecs.BOM_UTF8):
        encoding = 'utf-8-sig'
    else:
        match = XML_DECLARATION_ENCODING.match(content)
        if match:
            encoding = match.group(1).decode('ascii')
        elif content_type and 'charset' in content_type.lower():
            encoding = requests.utils.get_encoding_from_headers({'content-type': content_type})
        else:
            encoding = 'utf-8'

    try:
        return content.decode(encoding, errors='replace')
    except LookupError:
        logger.warning("Unknown response encoding %r, decoding as UTF-8", encoding)
        return content.decode('utf-8', errors='replace')
