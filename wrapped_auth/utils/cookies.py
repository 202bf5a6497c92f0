"""Request-scoped cookie jar.

Reads come from the incoming request, writes are buffered and applied to the
outgoing response. Reads see this request's own writes, so a cookie deleted
earlier in the same request is already gone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from fastapi import Request, Response


@dataclass(frozen=True)
class CookieWrite:
    value: Optional[str]  # None means delete
    max_age: Optional[int] = None
    samesite: str = "lax"


class CookieJar:
    def __init__(self, incoming: Optional[Mapping[str, str]] = None, *, secure: bool = True) -> None:
        self._incoming: Dict[str, str] = dict(incoming or {})
        self._pending: Dict[str, CookieWrite] = {}
        self.secure = secure

    @classmethod
    def from_request(cls, request: Request, *, secure: bool) -> "CookieJar":
        return cls(request.cookies, secure=secure)

    def get(self, name: str) -> Optional[str]:
        if name in self._pending:
            return self._pending[name].value
        value = self._incoming.get(name)
        return value or None

    def set(self, name: str, value: str, *, max_age: int, samesite: str = "lax") -> None:
        self._pending[name] = CookieWrite(value=value, max_age=max_age, samesite=samesite)

    def delete(self, name: str) -> None:
        self._pending[name] = CookieWrite(value=None)

    def pending(self) -> Dict[str, CookieWrite]:
        return dict(self._pending)

    def apply(self, response: Response) -> Response:
        for name, write in self._pending.items():
            if write.value is None:
                response.delete_cookie(name, path="/", secure=self.secure, httponly=True)
            else:
                response.set_cookie(
                    name,
                    write.value,
                    max_age=write.max_age,
                    path="/",
                    secure=self.secure,
                    httponly=True,
                    samesite=write.samesite,
                )
        return response
