"""RTSP Basic and Digest (RFC 2617) client authentication."""

from __future__ import annotations

import base64
import hashlib
import os
import re
from typing import Optional, Sequence

_PARAM_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^,\s]*))')


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class Authenticator:
    """Builds ``Authorization`` headers from a server's challenges."""

    def __init__(self, username: str, password: str) -> None:
        self.username = username
        self.password = password
        self.scheme: Optional[str] = None
        self._params: dict[str, str] = {}
        self._nc = 0

    @property
    def ready(self) -> bool:
        return self.scheme is not None

    def update(self, challenges: Sequence[str]) -> bool:
        """Pick Digest over Basic from ``WWW-Authenticate`` values.

        Returns False when none of the challenges is usable.
        """
        basic: Optional[str] = None
        for challenge in challenges:
            scheme, _, rest = challenge.strip().partition(" ")
            if scheme.lower() == "digest":
                params = {m.group(1).lower(): m.group(2) if m.group(2) is not None else m.group(3)
                          for m in _PARAM_RE.finditer(rest)}
                if "realm" not in params or "nonce" not in params:
                    continue
                algorithm = params.get("algorithm", "MD5").upper()
                if algorithm != "MD5":
                    continue
                self.scheme = "digest"
                self._params = params
                self._nc = 0
                return True
            if scheme.lower() == "basic":
                basic = challenge
        if basic is not None:
            self.scheme = "basic"
            self._params = {}
            return True
        return False

    def header(self, method: str, uri: str) -> Optional[str]:
        if self.scheme == "basic":
            token = base64.b64encode(f"{self.username}:{self.password}".encode("utf-8")).decode("ascii")
            return f"Basic {token}"
        if self.scheme != "digest":
            return None
        realm = self._params["realm"]
        nonce = self._params["nonce"]
        ha1 = _md5(f"{self.username}:{realm}:{self.password}")
        ha2 = _md5(f"{method}:{uri}")
        fields = [
            f'username="{self.username}"',
            f'realm="{realm}"',
            f'nonce="{nonce}"',
            f'uri="{uri}"',
        ]
        qops = [q.strip() for q in self._params.get("qop", "").split(",") if q.strip()]
        if "auth" in qops:
            self._nc += 1
            nc = f"{self._nc:08x}"
            cnonce = os.urandom(8).hex()
            response = _md5(f"{ha1}:{nonce}:{nc}:{cnonce}:auth:{ha2}")
            fields += ["qop=auth", f"nc={nc}", f'cnonce="{cnonce}"']
        else:
            response = _md5(f"{ha1}:{nonce}:{ha2}")
        fields.append(f'response="{response}"')
        if "opaque" in self._params:
            fields.append(f'opaque="{self._params["opaque"]}"')
        return "Digest " + ", ".join(fields)


__all__ = ["Authenticator"]
