#!/usr/bin/env python3
"""
ONVIF client configuration.

Wire constants shared by the codec and the session, transport timeouts and
the environment-driven settings used by the command line example.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

# ONVIF namespace definitions
SOAP_ENV_NS = 'http://www.w3.org/2003/05/soap-envelope'
DEVICE_WSDL_NS = 'http://www.onvif.org/ver10/device/wsdl'
MEDIA2_WSDL_NS = 'http://www.onvif.org/ver20/media/wsdl'

# Every operation is posted here until GetServices says otherwise
DEFAULT_SERVICE_PATH = '/onvif/device_service'

CONTENT_TYPE = 'text/xml; charset=utf-8'
DEFAULT_SCHEME = 'http'

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 30.0


@dataclass(frozen=True)
class Timeouts:
    connect: float = DEFAULT_CONNECT_TIMEOUT
    read: float = DEFAULT_READ_TIMEOUT

    def as_tuple(self) -> Tuple[float, float]:
        return (self.connect, self.read)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass
class Settings:
    """Camera address, credentials and timeouts for one session."""

    address: str = ''
    username: str = ''
    password: str = ''
    timeouts: Timeouts = field(default_factory=Timeouts)

    @classmethod
    def from_env(cls, address: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None) -> 'Settings':
        """
        Build settings from ONVIF_* environment variables.

        Explicit arguments (typically command line flags) take precedence.
        """
        timeouts = Timeouts(
            connect=_env_float('ONVIF_CONNECT_TIMEOUT', DEFAULT_CONNECT_TIMEOUT),
            read=_env_float('ONVIF_READ_TIMEOUT', DEFAULT_READ_TIMEOUT),
        )
        return cls(
            address=address or os.environ.get('ONVIF_ADDRESS', ''),
            username=username or os.environ.get('ONVIF_USERNAME', ''),
            password=password or os.environ.get('ONVIF_PASSWORD', ''),
            timeouts=timeouts,
        )
