"""Errores tipados del motor de grupos.

Cada error lleva un ``code`` estable y un ``message`` corto pensado para el
usuario final. Nada de detalles internos en ``message``.
"""

from typing import Any


class EngineError(Exception):
    """Base de todos los errores del motor."""

    code = "error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code, "detail": self.message}


class Unauthenticated(EngineError):
    code = "unauthenticated"
    status_code = 401
    default_message = "You must be logged in"


class Unauthorized(EngineError):
    code = "unauthorized"
    status_code = 403
    default_message = "You do not have permission to do this"


class InvalidState(EngineError):
    code = "invalid_state"
    status_code = 409
    default_message = "This action is not allowed right now"


class ContactAdmin(InvalidState):
    """Solicitud previa rechazada: solo el owner puede desbloquearla."""

    code = "contact_admin"
    default_message = "Your previous request was denied. Please contact the group admin."


class NotFound(EngineError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class Conflict(EngineError):
    code = "conflict"
    status_code = 409
    default_message = "This record already exists"


class UpstreamFailure(EngineError):
    code = "upstream_failure"
    status_code = 502
    default_message = "Something went wrong, please try again"
