"""
Módulo core del starter.
Contiene la configuración de instancia, la máquina de estados y la
secuencia de apagado.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from config import (
    DEFAULT_AGENCY_SIZE,
    DEFAULT_MASTER_PORT,
    LISTEN_ADDRESS,
    MODE_CLUSTER,
    MODE_SINGLE,
    RUNNER_MODE,
    RUNNER_STOP_TIMEOUT,
    SHUTDOWN_TIMEOUT,
    SLAVE_JOIN_TIMEOUT,
)
from core.errors import PersistError
from core.peer_id import validate_peer_id
from core.peers import Peer, Peers
from metrics import starter_peers, starter_setup_save_failures_total, starter_state
from runner import Runner, create_runner
from security import SecurityManager
from storage.setup_config import SetupStore
from utils import split_host_port

logger = logging.getLogger(__name__)


class ServiceState(Enum):
    """Estados de una instancia de starter."""
    STARTING = "starting"
    RELAUNCHING = "relaunching"
    NEGOTIATING = "negotiating"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


_STATE_GAUGE = {state: i for i, state in enumerate(ServiceState)}

# Transiciones permitidas de la máquina de estados
_TRANSITIONS = {
    ServiceState.STARTING: {ServiceState.RELAUNCHING, ServiceState.NEGOTIATING, ServiceState.SHUTTING_DOWN},
    ServiceState.RELAUNCHING: {ServiceState.RUNNING, ServiceState.SHUTTING_DOWN},
    ServiceState.NEGOTIATING: {ServiceState.RUNNING, ServiceState.SHUTTING_DOWN},
    ServiceState.RUNNING: {ServiceState.SHUTTING_DOWN},
    ServiceState.SHUTTING_DOWN: {ServiceState.TERMINATED},
    ServiceState.TERMINATED: set(),
}


@dataclass(frozen=True)
class ServiceConfig:
    """
    Configuración de una instancia de starter.

    Los esclavos locales reciben un clon (dataclasses.replace) con su
    propia identidad, directorio y dirección del master.
    """
    data_dir: str
    id: str = ""
    mode: str = MODE_CLUSTER
    own_address: str = ""
    master_address: str = ""  # "host:port" del master; vacío = este starter es master
    master_port: int = DEFAULT_MASTER_PORT
    listen_address: str = LISTEN_ADDRESS
    agency_size: int = DEFAULT_AGENCY_SIZE
    start_local_slaves: bool = False
    is_local_slave: bool = False
    enable_tls: bool = False
    cert_dir: str = "certs"
    jwt_secret: str = ""

    def validate(self):
        """
        Valida la configuración.

        Raises:
            ValueError: Si algún valor no es válido
        """
        if self.mode not in (MODE_CLUSTER, MODE_SINGLE):
            raise ValueError(f"Modo desconocido: {self.mode}")
        if self.agency_size < 1:
            raise ValueError(f"agency_size debe ser >= 1 (es {self.agency_size})")
        if not 0 < self.master_port < 65536:
            raise ValueError(f"Puerto inválido: {self.master_port}")
        if not self.data_dir:
            raise ValueError("data_dir es requerido")
        if self.id and not validate_peer_id(self.id):
            raise ValueError(f"ID inválido: {self.id!r}")
        if self.master_address:
            split_host_port(self.master_address)

    @property
    def is_master(self) -> bool:
        return not self.master_address

    @property
    def effective_agency_size(self) -> int:
        """En modo single no hay agencia: tamaño 1."""
        return 1 if self.mode == MODE_SINGLE else self.agency_size


class ServiceCore:
    """
    Clase base con la identidad, el registro de peers confirmado y la
    máquina de estados de un starter.
    """

    def __init__(
        self,
        config: ServiceConfig,
        runner: Optional[Runner] = None,
        runner_factory: Optional[Callable[[], Runner]] = None
    ):
        """
        Args:
            config: Configuración de la instancia
            runner: Supervisor de servidores (None = según RUNNER_MODE)
            runner_factory: Fábrica de runners para los esclavos locales
        """
        config.validate()
        self.config = config
        self.id = config.id
        self.state = ServiceState.STARTING
        self.peers = Peers(agency_size=config.effective_agency_size)
        self.agency_size = config.effective_agency_size
        self.start_local_slaves_flag = config.start_local_slaves and not config.is_local_slave

        self.setup_store = SetupStore(config.data_dir)
        self.security = SecurityManager(
            enable_tls=config.enable_tls,
            cert_dir=config.cert_dir,
            jwt_secret=config.jwt_secret or None
        )
        self.runner_factory = runner_factory or (lambda: create_runner(RUNNER_MODE))
        self.runner = runner or self.runner_factory()

        self._stop_event = asyncio.Event()
        self._force_shutdown = False
        self._terminating = False

    @property
    def is_master(self) -> bool:
        return self.config.is_master

    @property
    def own_peer(self) -> Optional[Peer]:
        return self.peers.peer_by_id(self.id) if self.id else None

    @property
    def announce_port(self) -> int:
        """Puerto anunciado de la API de control de este starter."""
        peer = self.own_peer
        return peer.starter_port() if peer else self.config.master_port

    @property
    def shutdown_requested(self) -> bool:
        return self._stop_event.is_set()

    def set_state(self, state: ServiceState):
        """Avanza la máquina de estados."""
        if state == self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Transición inválida {self.state.value} → {state.value}")
        logger.debug(f"Starter {self.id or '?'}: {self.state.value} → {state.value}")
        self.state = state
        if self.id:
            starter_state.labels(peer_id=self.id).set(_STATE_GAUGE[state])

    def commit_peers(self, peers: Peers, save: bool = True) -> bool:
        """
        Publica un nuevo snapshot del registro de peers y lo persiste.

        Returns:
            True si se guardó (o no se pidió guardar)
        """
        self.peers = peers
        self.agency_size = peers.agency_size
        if self.id:
            starter_peers.labels(peer_id=self.id).set(len(peers))
        return self.save_setup() if save else True

    def save_setup(self) -> bool:
        """
        Guarda el setup actual en disco.
        Un fallo no es fatal: se sigue en memoria, pero un reinicio no
        podrá reanudar este setup.
        """
        try:
            self.setup_store.save(self.peers, self.id, self.start_local_slaves_flag)
            return True
        except PersistError as e:
            starter_setup_save_failures_total.labels(peer_id=self.id).inc()
            logger.error(
                f"Starter {self.id}: no se pudo guardar el setup ({e}). "
                f"Un reinicio NO reanudará este cluster"
            )
            return False

    def request_shutdown(self, force: bool = False) -> bool:
        """
        Solicita el apagado del starter. Idempotente.

        Args:
            force: Detener los servidores sin esperar apagado ordenado

        Returns:
            True si esta llamada inició el apagado, False si ya estaba en curso
        """
        if self._stop_event.is_set():
            logger.debug(f"Starter {self.id}: apagado ya en curso")
            return False
        logger.info(f"Starter {self.id}: apagado solicitado (force={force})")
        self._force_shutdown = force
        self._stop_event.set()
        return True

    async def sleep_or_stop(self, seconds: float) -> bool:
        """
        Duerme hasta `seconds` o hasta que se solicite el apagado.

        Returns:
            True si se solicitó el apagado
        """
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _stop_children(self):
        """Detiene esclavos locales y servidores supervisados."""
        await self.wait_for_local_slaves(SLAVE_JOIN_TIMEOUT)

        if self.runner.servers_started():
            try:
                await asyncio.wait_for(
                    self.runner.stop(force=self._force_shutdown),
                    timeout=RUNNER_STOP_TIMEOUT
                )
            except asyncio.TimeoutError:
                logger.error(f"Starter {self.id}: los servidores no se detuvieron en {RUNNER_STOP_TIMEOUT}s")

    async def terminate(self):
        """
        Secuencia de apagado: una sola vez por instancia, acotada por
        SHUTDOWN_TIMEOUT.
        """
        if self._terminating:
            return
        self._terminating = True

        self._stop_event.set()
        self.set_state(ServiceState.SHUTTING_DOWN)
        logger.info(f"Starter {self.id}: apagando...")

        try:
            await asyncio.wait_for(self._stop_children(), timeout=SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error(f"Starter {self.id}: apagado incompleto tras {SHUTDOWN_TIMEOUT}s")
            self.cancel_local_slaves()

        await self.stop_http_server()

        self.set_state(ServiceState.TERMINATED)
        logger.info(f"Starter {self.id}: terminado")
