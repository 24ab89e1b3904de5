# src/codable_bff/toasts.py

import typing

from pydantic import BaseModel


class Toast(BaseModel):
    kind: str
    message: str


class Toaster:
    """Queue of user-visible notifications, drained by the front end."""

    def __init__(self):
        self._queue: typing.List[Toast] = []

    def success(self, message: str) -> None:
        self._queue.append(Toast(kind="success", message=message))

    def error(self, message: str) -> None:
        print(f"TOAST: error - {message}")
        self._queue.append(Toast(kind="error", message=message))

    def info(self, message: str) -> None:
        self._queue.append(Toast(kind="info", message=message))

    def pending(self) -> typing.List[Toast]:
        return list(self._queue)

    def drain(self) -> typing.List[Toast]:
        toasts, self._queue = self._queue, []
        return toasts
