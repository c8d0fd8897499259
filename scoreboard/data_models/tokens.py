"""
Action token payload.

The wire form is `<payload>.<signature>`, both URL-safe base64 without
padding; the payload is compact JSON with short keys.
"""

import base64
import json
from dataclasses import dataclass


def b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def b64decode(text: str) -> bytes:
    padding = '=' * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


@dataclass(frozen=True)
class ActionToken:
    user_id: str
    category: str
    expires_at: int  # epoch seconds, part of the signed payload
    nonce: str

    @property
    def token_id(self) -> str:
        return self.nonce

    def payload_bytes(self) -> bytes:
        body = {'u': self.user_id, 'c': self.category, 'e': self.expires_at, 'n': self.nonce}
        return json.dumps(body, separators=(',', ':'), sort_keys=True).encode('utf-8')

    @classmethod
    def from_payload_bytes(cls, raw: bytes) -> 'ActionToken':
        body = json.loads(raw.decode('utf-8'))
        if not isinstance(body, dict):
            raise ValueError("token payload must be an object")
        user_id, category, expires_at, nonce = body['u'], body['c'], body['e'], body['n']
        if not all(isinstance(value, str) for value in (user_id, category, nonce)):
            raise ValueError("token payload fields have wrong types")
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            raise ValueError("token expiry must be an integer")
        return cls(user_id=user_id, category=category, expires_at=expires_at, nonce=nonce)

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at
