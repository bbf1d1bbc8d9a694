"""
Módulo de esclavos locales.
Lanza starters adicionales en el mismo host para completar la agencia.
"""
import asyncio
import logging
import os
from dataclasses import replace
from typing import Iterable, List, Optional

from config import LOOPBACK_ADDRESS
from core.errors import GenerationError, SpawnError
from core.peer_id import create_unique_id
from core.peers import Peer
from metrics import starter_local_slaves
from utils import join_host_port

logger = logging.getLogger(__name__)


class ServiceLocalSlaves:
    """
    Mixin que añade orquestación de esclavos locales.
    Requiere que la clase tenga: id, config, agency_size, _stop_event,
    runner_factory
    """

    def __init__(self):
        """Inicializa el registro de esclavos."""
        self.local_slaves: List = []
        self._slave_tasks: List[asyncio.Task] = []

    def local_master_address(self) -> str:
        """
        Dirección del master para los esclavos: la dirección propia
        anunciada, o loopback, con el puerto anunciado.
        """
        host = self.config.own_address or LOOPBACK_ADDRESS
        return join_host_port(host, self.announce_port)

    def allocate_local_slave_peers(self) -> List[Peer]:
        """
        Crea identidades para agency_size - 1 esclavos.
        Un fallo al generar un ID descarta solo ese esclavo.
        """
        peers = []
        for index in range(2, self.agency_size + 1):
            try:
                slave_id = create_unique_id()
            except GenerationError as e:
                logger.error(f"Starter {self.id}: no se pudo crear ID para esclavo {index - 1}: {e}")
                continue
            peers.append(Peer(
                id=slave_id,
                data_dir=os.path.join(self.config.data_dir, f"local-slave-{index - 1}")
            ))
        return peers

    def create_and_start_local_slaves(self) -> int:
        """
        Crea peers para los esclavos locales y los arranca.

        Returns:
            Número de esclavos arrancados
        """
        return self.start_local_slaves(self.allocate_local_slave_peers())

    def create_slave_service(self, config):
        """
        Construye la instancia de starter de un esclavo.

        Raises:
            SpawnError: Si la configuración clonada o el runner no son válidos
        """
        try:
            return type(self)(config, runner_factory=self.runner_factory)
        except (ValueError, OSError) as e:
            raise SpawnError(f"Esclavo {config.id}: {e}") from e

    def start_local_slaves(self, peers: Iterable[Peer]) -> int:
        """
        Arranca un starter por cada peer distinto de este.

        Args:
            peers: Peers de los esclavos (puede incluir este starter)

        Returns:
            Número de esclavos arrancados
        """
        peers = list(peers)
        master_address = self.local_master_address()
        logger.info(
            f"Starter {self.id}: arrancando esclavos locales "
            f"({len([p for p in peers if p.id != self.id])}) con master {master_address}..."
        )

        started = 0
        for index, p in enumerate(peers):
            if p.id == self.id:
                continue
            config = replace(
                self.config,
                id=p.id,
                data_dir=p.data_dir,
                master_address=master_address,
                start_local_slaves=False,
                is_local_slave=True
            )
            try:
                os.makedirs(config.data_dir, exist_ok=True)
                slave = self.create_slave_service(config)
            except (OSError, SpawnError) as e:
                logger.error(f"Starter {self.id}: no se pudo crear el esclavo local {index} ({p.id}): {e}")
                continue

            self.local_slaves.append(slave)
            self._slave_tasks.append(asyncio.create_task(
                self._run_local_slave(slave),
                name=f"local-slave-{p.id}"
            ))
            started += 1

        starter_local_slaves.labels(peer_id=self.id).set(len(self.local_slaves))
        return started

    async def _run_local_slave(self, slave):
        """Ejecuta un esclavo; sus fallos no afectan a los demás."""
        try:
            await slave.run(parent_stop=self._stop_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Starter {self.id}: esclavo local {slave.config.id} falló: {e}")

    async def wait_for_local_slaves(self, timeout: Optional[float] = None) -> bool:
        """
        Barrera de unión: espera a que terminen todos los esclavos.

        Returns:
            True si todos terminaron dentro del timeout
        """
        if not self._slave_tasks:
            return True
        done, pending = await asyncio.wait(self._slave_tasks, timeout=timeout)
        if pending:
            logger.warning(f"Starter {self.id}: {len(pending)} esclavos no terminaron a tiempo")
            self.cancel_local_slaves()
            return False
        return True

    def cancel_local_slaves(self):
        """Cancela las tareas de esclavos que sigan vivas."""
        for task in self._slave_tasks:
            if not task.done():
                task.cancel()
