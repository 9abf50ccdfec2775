#!/usr/bin/env python3
"""
ONVIF HTTP Digest Authorization Calculator

This module answers the HTTP Digest challenge (RFC 2617) a camera sends in
the WWW-Authenticate header of a 401 response:

HA1 = H( username:realm:password )
HA2 = H( method:uri )
response = H( HA1:nonce:HA2 )                        when qop is absent
response = H( HA1:nonce:nc:cnonce:qop:HA2 )          when qop=auth

Every challenge is answered from scratch with a nonce count of 1; the
session retries at most once per operation so the count is never reused.
"""

import argparse
import hashlib
import os
import re
import sys
from dataclasses import dataclass
from typing import Dict, Optional

from onvif_errors import AuthChallengeError

# Algorithm token -> (hashlib name, session variant)
ALGORITHMS = {
    'MD5': ('md5', False),
    'MD5-SESS': ('md5', True),
    'SHA-256': ('sha256', False),
    'SHA-256-SESS': ('sha256', True),
}

INITIAL_NONCE_COUNT = 1

_SCHEME_RE = re.compile(r'(?:^|,)\s*Digest\s+', re.IGNORECASE)
_PARAM_RE = re.compile(r'([\w-]+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|([^\s,]*))')


@dataclass(frozen=True)
class DigestChallenge:
    realm: str
    nonce: str
    opaque: Optional[str] = None
    qop: Optional[str] = None
    algorithm: Optional[str] = None

    @property
    def hash_name(self) -> str:
        return ALGORITHMS[(self.algorithm or 'MD5').upper()][0]

    @property
    def session(self) -> bool:
        return ALGORITHMS[(self.algorithm or 'MD5').upper()][1]


def parse_digest_params(text: str) -> Dict[str, str]:
    params = {}
    for match in _PARAM_RE.finditer(text):
        key = match.group(1).lower()
        if match.group(2) is not None:
            value = re.sub(r'\\(.)', r'\1', match.group(2))
        else:
            value = match.group(3)
        # First occurrence wins when several challenges are folded together
        params.setdefault(key, value)
    return params


def challenge_from_header(header_value: Optional[str]) -> DigestChallenge:
    """
    Parse a WWW-Authenticate header into a DigestChallenge.

    Args:
        header_value: Raw header value, e.g. 'Digest realm="cam", nonce="abc"'

    Returns:
        The parsed challenge

    Raises:
        AuthChallengeError: No Digest challenge, no realm or nonce, or a
            qop/algorithm this client cannot answer
    """
    if not header_value:
        raise AuthChallengeError("Missing WWW-Authenticate header")

    scheme = _SCHEME_RE.search(header_value)
    if scheme is None:
        raise AuthChallengeError(f"Not a Digest challenge: {header_value}")

    params = parse_digest_params(header_value[scheme.end():])
    realm = params.get('realm')
    nonce = params.get('nonce')
    if realm is None or not nonce:
        raise AuthChallengeError(f"Challenge without realm or nonce: {header_value}")

    qop = None
    if 'qop' in params:
        options = [option.strip().lower() for option in params['qop'].split(',')]
        if 'auth' not in options:
            raise AuthChallengeError(f"Unsupported qop: {params['qop']}")
        qop = 'auth'

    algorithm = params.get('algorithm')
    if algorithm is not None and algorithm.upper() not in ALGORITHMS:
        raise AuthChallengeError(f"Unsupported algorithm: {algorithm}")

    return DigestChallenge(
        realm=realm,
        nonce=nonce,
        opaque=params.get('opaque'),
        qop=qop,
        algorithm=algorithm,
    )


def generate_cnonce() -> str:
    """
    Generate a random client nonce.

    Returns:
        16 hex characters
    """
    return os.urandom(8).hex()


def compute_digest_response(challenge: DigestChallenge, method: str, path: str,
                            username: str, password: str,
                            nonce_count: str, cnonce: str) -> str:
    """Compute the ``response`` value of the Authorization header."""
    def h(value: str) -> str:
        return hashlib.new(challenge.hash_name, value.encode('utf-8')).hexdigest()

    ha1 = h(f"{username}:{challenge.realm}:{password}")
    if challenge.session:
        ha1 = h(f"{ha1}:{challenge.nonce}:{cnonce}")
    ha2 = h(f"{method}:{path}")

    if challenge.qop:
        return h(f"{ha1}:{challenge.nonce}:{nonce_count}:{cnonce}:{challenge.qop}:{ha2}")
    return h(f"{ha1}:{challenge.nonce}:{ha2}")


def _quote(value: str) -> str:
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def authorization_header(challenge: DigestChallenge, method: str, path: str,
                         username: str, password: str,
                         cnonce: Optional[str] = None) -> str:
    """
    Build the Authorization header answering ``challenge``.

    Args:
        challenge: Parsed WWW-Authenticate challenge
        method: HTTP method of the request being retried
        path: Request path (the digest-uri)
        username: Camera username
        password: Camera password
        cnonce: Client nonce, generated when not given

    Returns:
        Authorization header value
    """
    nonce_count = f"{INITIAL_NONCE_COUNT:08x}"
    if cnonce is None:
        cnonce = generate_cnonce()

    response = compute_digest_response(challenge, method, path, username, password,
                                       nonce_count, cnonce)

    parts = [
        f"username={_quote(username)}",
        f"realm={_quote(challenge.realm)}",
        f"nonce={_quote(challenge.nonce)}",
        f"uri={_quote(path)}",
        f"response={_quote(response)}",
    ]
    if challenge.algorithm:
        parts.append(f"algorithm={challenge.algorithm}")
    if challenge.opaque is not None:
        parts.append(f"opaque={_quote(challenge.opaque)}")
    if challenge.qop:
        parts.append(f"qop={challenge.qop}")
        parts.append(f"nc={nonce_count}")
    if challenge.qop or challenge.session:
        parts.append(f"cnonce={_quote(cnonce)}")

    return 'Digest ' + ', '.join(parts)


def main(argv=None):
    """
    Print the Authorization header answering a WWW-Authenticate challenge.
    """
    parser = argparse.ArgumentParser(description="ONVIF HTTP Digest Authorization calculator")
    parser.add_argument('challenge', help='WWW-Authenticate header value')
    parser.add_argument('--username', required=True)
    parser.add_argument('--password', required=True)
    parser.add_argument('--method', default='POST')
    parser.add_argument('--uri', default='/onvif/device_service')
    parser.add_argument('--cnonce')
    args = parser.parse_args(argv)

    try:
        challenge = challenge_from_header(args.challenge)
    except AuthChallengeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Realm:     {challenge.realm}")
    print(f"Nonce:     {challenge.nonce}")
    print(f"QOP:       {challenge.qop or '-'}")
    print(f"Algorithm: {challenge.algorithm or 'MD5'}")
    print()
    print("Authorization: " + authorization_header(
        challenge, args.method, args.uri, args.username, args.password, cnonce=args.cnonce))
    return 0


if __name__ == "__main__":
    sys.exit(main())
