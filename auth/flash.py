"""
auth/flash.py -- One-shot flash messages.

Messages are kept in the signed Starlette session (request.session) under
_FLASH_KEY. get_flashed_messages() returns them and removes them in the same
call, so a message appears on exactly one rendered page.

Layer rule: no imports from api/, web/, or vault/.
"""

from __future__ import annotations

from starlette.requests import Request

_FLASH_KEY = "_flashes"


def flash(request: Request, message: str) -> None:
    """Queue message for the next rendered page."""
    messages = list(request.session.get(_FLASH_KEY, []))
    messages.append(message)
    request.session[_FLASH_KEY] = messages


def get_flashed_messages(request: Request) -> list[str]:
    """Return and clear all queued messages."""
    return request.session.pop(_FLASH_KEY, [])
