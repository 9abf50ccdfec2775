#!/usr/bin/env python3
"""
ONVIF client error types.

Every failure of a device operation is one of these. The device session
records them on the response instead of raising them to the caller.
"""


class OnvifError(Exception):
    pass


class NetworkError(OnvifError):
    """Connection, timeout or I/O failure reported by the transport."""


class AuthChallengeError(OnvifError):
    """A 401 arrived but its WWW-Authenticate challenge cannot be answered."""


class HttpError(OnvifError):
    def __init__(self, status_code: int, reason: str, body: str = ""):
        self.status_code = int(status_code)
        self.reason = reason
        self.body = body
        super().__init__(f"{self.status_code} - {self.reason}\n{self.body}")


class ParseError(OnvifError):
    """The response body did not yield the expected structure."""


class MalformedResponse(ParseError):
    pass


class MissingField(ParseError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing field in response: {field}")
