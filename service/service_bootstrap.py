"""
Módulo de arranque del starter.
Decide entre relanzar un setup persistido o negociar el registro de peers
(master: acepta /hello; esclavo: se une al master).
"""
import logging
from typing import Dict, Optional

from client.api import StarterClient
from config import HELLO_RETRY_INTERVAL, MODE_CLUSTER, PEERS_POLL_INTERVAL
from core.errors import StarterError
from core.peer_id import create_unique_id
from core.peers import Peer, Peers
from metrics import starter_relaunch_total
from service.service_core import ServiceState
from storage.setup_config import FreshStart, Relaunched, SetupConfigFile
from utils import endpoint_url

logger = logging.getLogger(__name__)


class ServiceBootstrap:
    """
    Mixin con el relanzamiento y la negociación de peers.
    Requiere que la clase tenga: config, setup_store, security, commit_peers,
    start_http_server, start_local_slaves, create_and_start_local_slaves,
    sleep_or_stop
    """

    async def bootstrap(self):
        """
        Lleva el starter hasta un registro de peers confirmado.
        Al terminar, el estado es RELAUNCHING o NEGOTIATING (o el apagado
        fue solicitado durante la negociación).
        """
        outcome = self.setup_store.try_relaunch()

        if isinstance(outcome, Relaunched) and self._accept_relaunch(outcome.record):
            await self.relaunch(outcome.record)
            return

        if isinstance(outcome, FreshStart):
            logger.debug(f"Arranque de cero en {self.config.data_dir} ({outcome.reason.value})")

        self.set_state(ServiceState.NEGOTIATING)
        if not self.id:
            self.id = create_unique_id()

        if self.is_master:
            await self.bootstrap_master()
        else:
            await self.bootstrap_slave()

    def _accept_relaunch(self, record: SetupConfigFile) -> bool:
        """Un registro sin entrada propia no se puede reanudar."""
        if record.peers.peer_id_exists(record.id):
            return True
        logger.warning(
            f"Setup en {self.config.data_dir} no contiene el peer propio '{record.id}'. "
            f"Empezando de cero..."
        )
        return False

    async def relaunch(self, record: SetupConfigFile):
        """Reanuda la identidad y el registro de peers guardados."""
        self.set_state(ServiceState.RELAUNCHING)
        self.id = record.id
        self.start_local_slaves_flag = record.start_local_slaves and not self.config.is_local_slave
        # agency_size sale del registro restaurado, no de la configuración
        self.commit_peers(record.peers, save=False)
        starter_relaunch_total.labels(peer_id=self.id).inc()

        logger.info(
            f"Relanzando starter con id '{self.id}' en "
            f"{self.config.own_address or '*'}:{self.announce_port}..."
        )
        await self.start_http_server()

        if self.start_local_slaves_flag:
            self.start_local_slaves(record.peers)

    # ══════════════════════════════════════════════════════════
    # Master
    # ══════════════════════════════════════════════════════════

    async def bootstrap_master(self):
        """Crea el registro con este starter como primer peer."""
        me = Peer(
            id=self.id,
            data_dir=self.config.data_dir,
            address=self.config.own_address,
            port=self.config.master_port,
            port_offset=0,
            has_agent=self.config.mode == MODE_CLUSTER,
            is_secure=self.security.is_secure
        )
        self.commit_peers(Peers(peers=(me,), agency_size=self.config.effective_agency_size))
        logger.info(f"Starter {self.id}: master en {self.config.own_address or '*'}:{self.announce_port}")

        await self.start_http_server()

        if self.start_local_slaves_flag:
            self.create_and_start_local_slaves()

        if self.config.mode == MODE_CLUSTER and not self.peers.have_enough_agents():
            logger.info(
                f"Starter {self.id}: esperando peers "
                f"({self.peers.agent_count()}/{self.agency_size} agentes)..."
            )
            while not self.peers.have_enough_agents():
                if await self.sleep_or_stop(PEERS_POLL_INTERVAL):
                    return

    def handle_hello(self, data: Dict) -> Peers:
        """
        Une (o re-une) un peer al registro del master.

        Args:
            data: {"id", "address", "port", "data_dir", "is_secure"}

        Returns:
            Registro tras la unión

        Raises:
            ValueError: Si la petición no es válida o este starter no es master
        """
        if not self.is_master:
            raise ValueError("Este starter no es master")
        peer_id = data.get("id")
        data_dir = data.get("data_dir")
        if not isinstance(peer_id, str) or not peer_id:
            raise ValueError("id es requerido")
        if not isinstance(data_dir, str) or not data_dir:
            raise ValueError("data_dir es requerido")
        port = data.get("port") or self.config.master_port
        if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
            raise ValueError(f"port inválido: {port!r}")
        address = data.get("address") or ""
        if not isinstance(address, str):
            raise ValueError(f"address inválido: {address!r}")

        # Re-unión: el peer ya existe, se devuelve el registro actual
        if self.peers.peer_id_exists(peer_id):
            logger.debug(f"Starter {self.id}: peer {peer_id} ya registrado")
            return self.peers

        peer = Peer(
            id=peer_id,
            data_dir=data_dir,
            address=address,
            port=port,
            port_offset=self.peers.next_port_offset(address),
            has_agent=self.peers.agent_count() < self.agency_size,
            is_secure=bool(data.get("is_secure", False))
        )
        self.commit_peers(self.peers.with_peer(peer))
        logger.info(
            f"Starter {self.id}: peer {peer.id} añadido "
            f"({peer.address or '*'}:{peer.starter_port()}, agente={peer.has_agent})"
        )
        return self.peers

    # ══════════════════════════════════════════════════════════
    # Esclavo
    # ══════════════════════════════════════════════════════════

    async def bootstrap_slave(self):
        """Se une al master y espera un registro con agencia completa."""
        endpoint = endpoint_url(self.config.master_address, self.config.enable_tls)
        logger.info(f"Starter {self.id}: uniéndose al master {endpoint}...")

        async with StarterClient(endpoint, jwt_secret=self.config.jwt_secret or None) as master:
            peers = None
            while peers is None:
                peers = await self._join_master(master)
                if peers is None:
                    return

                while not peers.have_enough_agents():
                    if await self.sleep_or_stop(PEERS_POLL_INTERVAL):
                        return
                    try:
                        peers = await master.peers()
                    except StarterError as e:
                        logger.debug(f"Starter {self.id}: consulta de peers al master falló: {e}")

                if not peers.peer_id_exists(self.id):
                    # El master perdió el registro (ej: reinicio de cero): volver a unirse
                    logger.warning(f"Starter {self.id}: el master no tiene registrado este peer, repitiendo hello")
                    peers = None
                    if await self.sleep_or_stop(HELLO_RETRY_INTERVAL):
                        return

        self.commit_peers(peers)
        logger.info(f"Starter {self.id}: unido al master ({len(peers)} peers)")
        await self.start_http_server()

    async def _join_master(self, master: StarterClient) -> Optional[Peers]:
        """
        Repite hello hasta que el master responda.

        Returns:
            Registro del master, o None si se solicitó el apagado
        """
        while True:
            try:
                return await master.hello(
                    self.id,
                    self.config.own_address,
                    self.config.master_port,
                    self.config.data_dir,
                    self.security.is_secure
                )
            except StarterError as e:
                logger.debug(f"Starter {self.id}: hello al master falló: {e}")
                if await self.sleep_or_stop(HELLO_RETRY_INTERVAL):
                    return None
