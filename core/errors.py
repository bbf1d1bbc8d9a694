"""
Errores del starter.

Los fallos locales a un peer o a un esclavo se registran y se contienen;
solo la creación del ID propio o el bind del listener propio son fatales.
"""


class StarterError(Exception):
    """Error base del starter."""


class GenerationError(StarterError):
    """No se pudo generar un ID único (fuente de entropía no disponible)."""


class PersistError(StarterError):
    """No se pudo escribir o serializar el registro de setup."""


class SpawnError(StarterError):
    """Un esclavo local no pudo construirse o arrancar."""


class UnreachableError(StarterError):
    """Un starter o servidor no respondió a una consulta de control."""

    def __init__(self, endpoint: str, message: str = ""):
        self.endpoint = endpoint
        super().__init__(f"{endpoint} no responde: {message}" if message else f"{endpoint} no responde")
