"""
signing.py — Gateway Request/Callback Signatures

Canonical form: drop the `sign` field and empty (None) values, sort the
remaining field names, join as `k=v` pairs with `&`, append `&key=<secret>`
and hash with the configured hashlib algorithm (lowercase hex). The digest
algorithm is part of the gateway contract; md5 is what the gateway expects
by default.
"""

import hashlib
import hmac
from typing import Any, Mapping

SIGN_FIELD = "sign"


def canonicalize(fields: Mapping[str, Any]) -> str:
    pairs = [
        f"{key}={fields[key]}"
        for key in sorted(fields)
        if key != SIGN_FIELD and fields[key] is not None
    ]
    return "&".join(pairs)


class SignatureVerifier:
    """
    Signs outbound gateway requests and verifies inbound callbacks
    with a shared secret.
    """

    def __init__(self, secret: str, algorithm: str = "md5"):
        self.secret = secret
        self.algorithm = algorithm

    def sign(self, fields: Mapping[str, Any]) -> str:
        payload = f"{canonicalize(fields)}&key={self.secret}"
        return hashlib.new(self.algorithm, payload.encode("utf-8")).hexdigest()

    def verify(self, fields: Mapping[str, Any]) -> bool:
        received = fields.get(SIGN_FIELD)
        if not received:
            return False
        return hmac.compare_digest(self.sign(fields), str(received).lower())
