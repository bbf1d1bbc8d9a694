"""
Modelo de peers y registro de peers del cluster.

El registro es inmutable: cada cambio produce un snapshot nuevo, de modo que
los lectores concurrentes (API de control, esclavos) solo ven registros
confirmados.
"""
from dataclasses import dataclass, field, asdict, replace
from typing import Dict, Iterator, List, Optional, Tuple

from config import DEFAULT_MASTER_PORT, PORT_OFFSET_INCREMENT
from core.server_types import ServerType


@dataclass(frozen=True)
class Peer:
    """Un participante del cluster (identidad + directorio + dirección)."""
    id: str
    data_dir: str
    address: str = ""
    port: int = DEFAULT_MASTER_PORT
    port_offset: int = 0
    has_agent: bool = False
    is_secure: bool = False

    def starter_port(self) -> int:
        """Puerto de la API de control de este peer."""
        return self.port + self.port_offset

    def server_port(self, server_type: ServerType) -> int:
        """Puerto del servidor de base de datos del tipo dado."""
        return self.starter_port() + server_type.port_offset

    def to_dict(self) -> Dict:
        """Serializa a diccionario."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Peer':
        """
        Deserializa desde diccionario.

        Raises:
            ValueError: Si faltan campos o los tipos no son válidos
        """
        if not isinstance(data, dict):
            raise ValueError(f"Peer inválido: {data!r}")
        try:
            peer = cls(**data)
        except TypeError as e:
            raise ValueError(f"Peer inválido: {e}") from e

        if not isinstance(peer.id, str) or not peer.id:
            raise ValueError("Peer sin id")
        if not isinstance(peer.data_dir, str):
            raise ValueError(f"Peer {peer.id}: data_dir inválido")
        if not isinstance(peer.port, int) or not isinstance(peer.port_offset, int):
            raise ValueError(f"Peer {peer.id}: puertos inválidos")
        return peer


@dataclass(frozen=True)
class Peers:
    """
    Registro ordenado de peers (orden de inserción = orden de unión).

    El primer peer es el master. agency_size es el número objetivo de
    agentes de consenso.
    """
    peers: Tuple[Peer, ...] = field(default_factory=tuple)
    agency_size: int = 1

    def __len__(self) -> int:
        return len(self.peers)

    def __iter__(self) -> Iterator[Peer]:
        return iter(self.peers)

    def peer_by_id(self, peer_id: str) -> Optional[Peer]:
        """Busca un peer por ID."""
        for p in self.peers:
            if p.id == peer_id:
                return p
        return None

    def peer_id_exists(self, peer_id: str) -> bool:
        """Verifica si existe un peer con ese ID."""
        return self.peer_by_id(peer_id) is not None

    def all_agents(self) -> List[Peer]:
        """Retorna los peers que ejecutan un agente."""
        return [p for p in self.peers if p.has_agent]

    def agent_count(self) -> int:
        return len(self.all_agents())

    def have_enough_agents(self) -> bool:
        """True si el registro ya tiene agency_size agentes."""
        return self.agent_count() >= self.agency_size

    def next_port_offset(self, address: str) -> int:
        """
        Calcula el siguiente offset de puertos libre para una dirección.

        Peers en la misma dirección reciben offsets distintos separados por
        PORT_OFFSET_INCREMENT.
        """
        used = {p.port_offset for p in self.peers if p.address == address}
        offset = 0
        while offset in used:
            offset += PORT_OFFSET_INCREMENT
        return offset

    def with_peer(self, peer: Peer) -> 'Peers':
        """
        Retorna un registro nuevo con el peer añadido al final.

        Raises:
            ValueError: Si ya existe un peer con el mismo ID o data_dir
        """
        if self.peer_id_exists(peer.id):
            raise ValueError(f"Peer {peer.id} ya existe")
        if any(p.data_dir == peer.data_dir and p.address == peer.address for p in self.peers):
            raise ValueError(f"Directorio {peer.data_dir} ya usado por otro peer")
        return replace(self, peers=self.peers + (peer,))

    def with_updated_peer(self, peer: Peer) -> 'Peers':
        """Retorna un registro nuevo donde el peer con el mismo ID es reemplazado."""
        if not self.peer_id_exists(peer.id):
            raise ValueError(f"Peer {peer.id} no existe")
        return replace(
            self,
            peers=tuple(peer if p.id == peer.id else p for p in self.peers)
        )

    def to_dict(self) -> Dict:
        """Serializa a diccionario."""
        return {
            "peers": [p.to_dict() for p in self.peers],
            "agency_size": self.agency_size
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Peers':
        """
        Deserializa desde diccionario.

        Raises:
            ValueError: Si la estructura no es válida
        """
        if not isinstance(data, dict):
            raise ValueError(f"Registro de peers inválido: {data!r}")
        raw_peers = data.get("peers")
        agency_size = data.get("agency_size")
        if not isinstance(raw_peers, list):
            raise ValueError("Registro de peers sin lista 'peers'")
        if not isinstance(agency_size, int) or isinstance(agency_size, bool):
            raise ValueError("Registro de peers sin 'agency_size' entero")
        return cls(
            peers=tuple(Peer.from_dict(p) for p in raw_peers),
            agency_size=agency_size
        )
