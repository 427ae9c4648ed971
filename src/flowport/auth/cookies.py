"""Name-keyed cookie jar for the login handshake.

The handshake sends an explicit ``Cookie`` header built from this jar on
every request, so cookies set on error responses and redirect hops are
carried forward exactly as the helpdesk rotates them.
"""

from __future__ import annotations

from typing import Iterator

import httpx


def parse_set_cookie(header: str) -> tuple[str, str] | None:
    """Extract ``(name, value)`` from one ``Set-Cookie`` header value."""
    pair = header.split(";", 1)[0].strip()
    if "=" not in pair:
        return None
    name, value = pair.split("=", 1)
    name = name.strip()
    if not name:
        return None
    return name, value.strip()


class CookieJar:
    """Cookies keyed by name. A later value for a name replaces the earlier one."""

    def __init__(self, cookies: dict[str, str] | None = None):
        self._cookies: dict[str, str] = dict(cookies or {})

    def set(self, name: str, value: str) -> None:
        self._cookies[name] = value

    def get(self, name: str, default: str | None = None) -> str | None:
        return self._cookies.get(name, default)

    def absorb(self, response: httpx.Response) -> list[str]:
        """Merge every ``Set-Cookie`` header of ``response``; return the names set."""
        names = []
        for header in response.headers.get_list("set-cookie"):
            parsed = parse_set_cookie(header)
            if parsed is None:
                continue
            name, value = parsed
            self._cookies[name] = value
            names.append(name)
        return names

    def header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def as_dict(self) -> dict[str, str]:
        return dict(self._cookies)

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[str]:
        return iter(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __repr__(self) -> str:
        return f"CookieJar({sorted(self._cookies)})"
