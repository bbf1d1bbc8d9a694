"""
Tipos de servidores de base de datos que un starter puede supervisar.
"""
from enum import Enum


class ServerType(Enum):
    """Rol de un proceso servidor."""
    AGENT = "agent"
    COORDINATOR = "coordinator"
    DBSERVER = "dbserver"
    SINGLE = "single"

    @property
    def port_offset(self) -> int:
        """Offset del puerto del servidor respecto al puerto del starter."""
        return _PORT_OFFSETS[self]

    @property
    def label(self) -> str:
        """Nombre legible (usado en logs)."""
        return _LABELS[self]


_PORT_OFFSETS = {
    ServerType.COORDINATOR: 1,
    ServerType.SINGLE: 1,
    ServerType.DBSERVER: 2,
    ServerType.AGENT: 3,
}

_LABELS = {
    ServerType.AGENT: "agent",
    ServerType.COORDINATOR: "coordinator",
    ServerType.DBSERVER: "db-server",
    ServerType.SINGLE: "single server",
}
