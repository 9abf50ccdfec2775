#!/usr/bin/env python3
"""
ONVIF device session.

An ``OnvifDevice`` owns everything known about one camera: where each
service lives, its device information, its media profiles and the stream
URI. Each operation is built, posted (with a single Digest retry on 401),
parsed and applied to that state, then handed to every subscriber.

    device = OnvifDevice('192.168.0.252', 'admin', 'secret')
    uri = asyncio.run(device.discover_stream_uri())
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from onvif_config import CONTENT_TYPE, DEFAULT_SCHEME, DEFAULT_SERVICE_PATH, Settings, Timeouts
from onvif_digest import authorization_header, challenge_from_header
from onvif_errors import (
    AuthChallengeError, HttpError, MalformedResponse, NetworkError, OnvifError, ParseError,
)
from onvif_parse import DeviceInformation, MediaProfile, parse_response
from onvif_request import OnvifRequest, RequestType
from onvif_transport import RequestsTransport, Transport, TransportResult

logger = logging.getLogger(__name__)


class CameraPaths:
    """
    Path of the service handling each operation. Everything starts at the
    default device service path and is moved by a GetServices response.
    """

    def __init__(self):
        self._paths = {kind: DEFAULT_SERVICE_PATH for kind in RequestType}

    def path_for(self, kind: RequestType) -> str:
        return self._paths[kind]

    def update_from_services(self, services: Dict[str, str]) -> int:
        """
        Apply a namespace -> path mapping. Namespaces of services this client
        does not call are ignored.

        Returns:
            Number of operations whose path was set
        """
        updated = 0
        for namespace, path in services.items():
            for kind in RequestType:
                if kind.namespace() == namespace:
                    self._paths[kind] = path
                    updated += 1
        return updated

    def as_dict(self) -> Dict[RequestType, str]:
        return dict(self._paths)


class OnvifResponse:
    """
    Outcome of one request.

    ``success`` only says the HTTP exchange returned 200. Whether the body
    could be interpreted is reported separately by ``parse_error``; ``ok``
    combines both.
    """

    def __init__(self, request: OnvifRequest):
        self.request = request
        self.success = False
        self.failure: Optional[OnvifError] = None
        self.parse_error: Optional[ParseError] = None
        self.parsed: Any = None
        self._message: Optional[str] = None
        self._summary = ''

    def update_response(self, success: bool, message: str, failure: Optional[OnvifError] = None):
        if self._message is not None:
            raise RuntimeError(f"{self.request.type} response already populated")
        self.success = success
        self._message = message
        self.failure = failure

    def set_outcome(self, summary: str, parsed: Any = None,
                    parse_error: Optional[ParseError] = None):
        """Record what the session made of the response."""
        self._summary = summary
        self.parsed = parsed
        self.parse_error = parse_error

    @property
    def result(self) -> Optional[str]:
        return self._message if self.success else None

    @property
    def error(self) -> Optional[str]:
        return None if self.success else self._message

    @property
    def summary(self) -> str:
        return self._summary

    @property
    def ok(self) -> bool:
        return self.success and self.parse_error is None

    def __repr__(self):
        return f"<OnvifResponse {self.request.type} success={self.success} ok={self.ok}>"


Listener = Callable[[OnvifResponse], None]


class ListenerHandle:
    def __init__(self, listeners: List[Listener], listener: Listener):
        self._listeners = listeners
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._listener in self._listeners

    def cancel(self):
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class OnvifDevice:
    def __init__(self, address: str, username: str = '', password: str = '',
                 transport: Optional[Transport] = None, timeouts: Optional[Timeouts] = None):
        """
        Initialize a session with one camera

        Args:
            address (str): Camera address, e.g. "192.168.0.252" or "192.168.0.252:2020".
                A scheme may be given ("https://...") and defaults to http.
            username (str): Camera username
            password (str): Camera password
            transport: Object posting the requests, a RequestsTransport by default
            timeouts: Connect and read timeouts handed to the transport
        """
        self.address = address
        self.username = username
        self.password = password
        self.transport = transport or RequestsTransport()
        self.timeouts = timeouts or Timeouts()

        if '://' in address:
            self.url = address.rstrip('/')
        else:
            self.url = f"{DEFAULT_SCHEME}://{address}"

        self.paths = CameraPaths()
        self.device_information = DeviceInformation()
        self.media_profiles: List[MediaProfile] = []
        self.stream_uri: Optional[str] = None
        self.rtsp_uri: Optional[str] = None
        # Set once device information has been retrieved
        self.is_connected = False

        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[Transport] = None) -> 'OnvifDevice':
        return cls(settings.address, settings.username, settings.password,
                   transport=transport, timeouts=settings.timeouts)

    def subscribe(self, listener: Listener) -> ListenerHandle:
        """Register ``listener`` for every completed response until cancelled."""
        self._listeners.append(listener)
        return ListenerHandle(self._listeners, listener)

    async def get_services(self) -> OnvifResponse:
        return await self.perform(RequestType.GET_SERVICES)

    async def get_device_information(self) -> OnvifResponse:
        return await self.perform(RequestType.GET_DEVICE_INFORMATION)

    async def get_profiles(self) -> OnvifResponse:
        return await self.perform(RequestType.GET_PROFILES)

    async def get_stream_uri(self, profile: Optional[MediaProfile] = None) -> Optional[OnvifResponse]:
        """
        Retrieve the stream URI of ``profile``, or of the first known profile.

        Returns None without sending anything when no profile is known.
        """
        return await self.perform(RequestType.GET_STREAM_URI, profile)

    async def discover_stream_uri(self) -> Optional[str]:
        """
        Run services, device information, profiles and stream URI in order.

        Returns:
            The RTSP URI with credentials, or None if a step failed
        """
        for step in (self.get_services, self.get_device_information, self.get_profiles):
            response = await step()
            if not response.ok:
                return None

        response = await self.get_stream_uri()
        if response is None or not response.ok:
            return None
        return self.rtsp_uri

    async def perform(self, kind: RequestType,
                      profile: Optional[MediaProfile] = None) -> Optional[OnvifResponse]:
        request = self._build_request(kind, profile)
        if request is None:
            return None

        # Only the network exchange leaves the caller's loop
        response = await asyncio.to_thread(self._communicate, request)
        self._parse_and_apply(response)
        self._notify(response)
        return response

    def _build_request(self, kind: RequestType,
                       profile: Optional[MediaProfile]) -> Optional[OnvifRequest]:
        if kind is not RequestType.GET_STREAM_URI:
            return OnvifRequest.create(kind)

        if profile is not None:
            if not profile.usable:
                raise ValueError(f"Profile {profile.name!r} has no token")
            return OnvifRequest.create(kind, profile.token)

        first = self.media_profiles[0] if self.media_profiles else None
        if first is None or not first.usable:
            logger.info("No usable media profile, skipping %s", kind)
            return None
        return OnvifRequest.create(kind, first.token)

    def _communicate(self, request: OnvifRequest) -> OnvifResponse:
        path = self.paths.path_for(request.type)
        url = self.url + path
        body = request.envelope()
        headers = {'Content-Type': CONTENT_TYPE}
        response = OnvifResponse(request)

        logger.debug("POST %s (%s)\n%s", url, request.type, body)
        try:
            result = self.transport.post(url, headers, body, self.timeouts)

            if result.status_code == 401:
                try:
                    challenge = challenge_from_header(result.header('WWW-Authenticate'))
                except AuthChallengeError as e:
                    logger.warning("%s: cannot answer challenge: %s", request.type, e)
                    response.update_response(False, _http_error_text(result), failure=e)
                    return response

                authorization = authorization_header(challenge, 'POST', urlsplit(url).path,
                                                     self.username, self.password)
                result = self.transport.post(url, dict(headers, Authorization=authorization),
                                             body, self.timeouts)
        except NetworkError as e:
            logger.warning("%s: network error: %s", request.type, e)
            response.update_response(False, str(e), failure=e)
            return response

        logger.debug("%s answered %s %s", request.type, result.status_code, result.reason)
        if result.status_code != 200:
            error = HttpError(result.status_code, result.reason, result.body)
            response.update_response(False, _http_error_text(result), failure=error)
        else:
            response.update_response(True, result.body)
        return response

    def _parse_and_apply(self, response: OnvifResponse):
        kind = response.request.type
        if not response.success:
            response.set_outcome(f"Communication error trying to get {kind}:\n\n{response.error}")
            return

        try:
            parsed = parse_response(kind, response.result)
            summary = self._apply(kind, parsed)
        except ParseError as e:
            logger.warning("%s: parsing failed: %s", kind, e)
            response.set_outcome(f"Parsing failed: {e}", parse_error=e)
            return

        response.set_outcome(summary, parsed=parsed)

    def _apply(self, kind: RequestType, parsed: Any) -> str:
        if kind is RequestType.GET_SERVICES:
            updated = self.paths.update_from_services(parsed)
            logger.info("Service paths updated: %s", self.paths.as_dict())
            return f"{len(parsed)} services retrieved, {updated} paths updated."

        if kind is RequestType.GET_DEVICE_INFORMATION:
            self.device_information = parsed
            self.is_connected = True
            return str(parsed)

        if kind is RequestType.GET_PROFILES:
            self.media_profiles = parsed
            return f"{len(parsed)} profiles retrieved."

        rtsp_uri = self.append_credentials(parsed)
        self.stream_uri = parsed
        self.rtsp_uri = rtsp_uri
        return "RTSP URI retrieved."

    def _notify(self, response: OnvifResponse):
        for listener in list(self._listeners):
            try:
                listener(response)
            except Exception:
                logger.exception("Listener failed on %s", response.request.type)

    def append_credentials(self, stream_uri: str) -> str:
        """
        Put the session credentials into ``stream_uri``.

        The host is taken from the configured address (the camera may be
        behind a NAT and report its private address); the port, path and
        query come from the camera.
        """
        parts = urlsplit(stream_uri)
        if not parts.scheme or not parts.netloc:
            raise MalformedResponse(f"Stream URI is not absolute: {stream_uri}")
        try:
            port = parts.port
        except ValueError:
            raise MalformedResponse(f"Invalid port in stream URI: {stream_uri}")

        host = urlsplit(self.url).hostname or ''
        if ':' in host:
            host = f"[{host}]"

        netloc = host
        if self.username:
            netloc = f"{quote(self.username, safe='')}:{quote(self.password, safe='')}@{host}"
        if port is not None:
            netloc += f":{port}"

        return urlunsplit((parts.scheme, netloc, parts.path or '/', parts.query, ''))

    def close(self):
        close = getattr(self.transport, 'close', None)
        if close is not None:
            close()


def _http_error_text(result: TransportResult) -> str:
    return f"{result.status_code} - {result.reason}\n{result.body}"
