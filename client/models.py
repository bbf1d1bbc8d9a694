"""
Modelos observados por los clientes de la API de control.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.server_types import ServerType


@dataclass(frozen=True)
class VersionInfo:
    """Respuesta de GET /version."""
    version: str
    build: str

    @classmethod
    def from_dict(cls, data: Dict) -> 'VersionInfo':
        return cls(version=data.get("version", ""), build=data.get("build", ""))


@dataclass(frozen=True)
class ServerProcess:
    """Descriptor de un proceso servidor (producido por el Runner)."""
    type: ServerType
    ip: str
    port: int
    is_secure: bool = False
    pid: int = 0

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "ip": self.ip,
            "port": self.port,
            "is_secure": self.is_secure,
            "pid": self.pid
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ServerProcess':
        return cls(
            type=ServerType(data["type"]),
            ip=data["ip"],
            port=int(data["port"]),
            is_secure=bool(data.get("is_secure", False)),
            pid=int(data.get("pid", 0))
        )


@dataclass(frozen=True)
class ProcessList:
    """Respuesta de GET /processes."""
    servers: List[ServerProcess] = field(default_factory=list)
    servers_started: bool = False

    def server_by_type(self, server_type: ServerType) -> Optional[ServerProcess]:
        """Retorna el primer servidor del tipo dado, o None."""
        for sp in self.servers:
            if sp.type == server_type:
                return sp
        return None

    def to_dict(self) -> Dict:
        return {
            "servers": [sp.to_dict() for sp in self.servers],
            "servers-started": self.servers_started
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ProcessList':
        return cls(
            servers=[ServerProcess.from_dict(s) for s in data.get("servers", [])],
            servers_started=bool(data.get("servers-started", False))
        )
