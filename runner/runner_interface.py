"""
Interfaz abstracta del ejecutor de servidores de base de datos.

El starter decide qué roles debe ejecutar su peer; el Runner arranca,
supervisa y detiene los procesos reales.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
import logging
import ssl

from client.models import ServerProcess
from config import MODE_SINGLE
from core.peers import Peer
from core.server_types import ServerType

logger = logging.getLogger(__name__)


def server_types_for(peer: Peer, mode: str) -> List[ServerType]:
    """
    Roles que ejecuta un peer según el modo.

    Args:
        peer: Peer local
        mode: MODE_SINGLE o MODE_CLUSTER

    Returns:
        Lista de tipos de servidor a arrancar (en orden de arranque)
    """
    if mode == MODE_SINGLE:
        return [ServerType.SINGLE]
    types = []
    if peer.has_agent:
        types.append(ServerType.AGENT)
    types.extend([ServerType.DBSERVER, ServerType.COORDINATOR])
    return types


class Runner(ABC):
    """Interfaz abstracta del supervisor de servidores."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @abstractmethod
    async def start(
        self,
        peer: Peer,
        mode: str,
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> List[ServerProcess]:
        """
        Arranca los servidores del peer local.

        Args:
            peer: Peer local (define puertos, directorio y roles)
            mode: MODE_SINGLE o MODE_CLUSTER
            ssl_context: Contexto TLS (None = sin TLS)

        Returns:
            Descriptores de los servidores arrancados
        """
        pass

    @abstractmethod
    def processes(self) -> List[ServerProcess]:
        """Descriptores de los servidores actuales."""
        pass

    @abstractmethod
    def servers_started(self) -> bool:
        """Verifica si los servidores ya están arrancados."""
        pass

    @abstractmethod
    async def stop(self, force: bool = False):
        """
        Detiene los servidores.

        Args:
            force: Terminar sin esperar un apagado ordenado
        """
        pass
