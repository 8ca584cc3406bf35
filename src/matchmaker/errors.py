"""
Errores del dominio.

La capa de API traduce cada tipo a su código HTTP; el núcleo
nunca arma mensajes para el usuario final.
"""


class MatchmakerError(Exception):
    """Error base del sistema."""

    kind = "matchmaker_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(MatchmakerError):
    """Perfil o match inexistente (o expirado)."""

    kind = "not_found"

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} '{key}' no encontrado")
        self.entity = entity
        self.key = key


class StorageError(MatchmakerError):
    """El backend de almacenamiento no está disponible o devolvió datos corruptos."""

    kind = "storage_error"


class ValidationError(MatchmakerError):
    """Payload, criterio o estado inválido."""

    kind = "validation_error"


class EventLogError(MatchmakerError):
    """Fallo leyendo o publicando en el event log."""

    kind = "event_log_error"
