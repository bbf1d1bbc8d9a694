"""
Starter del cluster - instancia de coordinador.

Este módulo orquesta los componentes del starter usando mixins:
- ServiceCore: Configuración, máquina de estados, apagado
- ServiceBootstrap: Relanzamiento y negociación de peers
- ServiceLocalSlaves: Esclavos locales en el mismo host
- ServiceHTTP: API de control
"""
import asyncio
import logging
from typing import Callable, Optional

from client.lifecycle import WHAT_CLUSTER, WHAT_SINGLE, ready_message
from config import LOOPBACK_ADDRESS, MODE_SINGLE
from core.server_types import ServerType
from runner import Runner
from service.service_bootstrap import ServiceBootstrap
from service.service_core import ServiceConfig, ServiceCore, ServiceState
from service.service_http import ServiceHTTP
from service.service_slaves import ServiceLocalSlaves

logger = logging.getLogger(__name__)


class StarterService(
    ServiceCore,
    ServiceBootstrap,
    ServiceLocalSlaves,
    ServiceHTTP
):
    """
    Instancia de starter - Clase orquestadora.

    Un esclavo local es otra StarterService construida con
    is_local_slave=True, que nunca lanza esclavos propios.

    Ejemplo de uso:
        config = ServiceConfig(data_dir="/tmp/starter", mode="single")
        service = StarterService(config)
        task = asyncio.create_task(service.run())
        ...
        service.request_shutdown()
        await task
    """

    def __init__(
        self,
        config: ServiceConfig,
        runner: Optional[Runner] = None,
        runner_factory: Optional[Callable[[], Runner]] = None
    ):
        """
        Inicializa el starter.

        Args:
            config: Configuración de la instancia
            runner: Supervisor de servidores (None = según RUNNER_MODE)
            runner_factory: Fábrica de runners para esclavos locales
        """
        ServiceCore.__init__(self, config, runner, runner_factory)
        ServiceLocalSlaves.__init__(self)
        ServiceHTTP.__init__(self)

        logger.debug(
            f"StarterService creado (data_dir={config.data_dir}, mode={config.mode}, "
            f"master={config.master_address or '-'}, local_slave={config.is_local_slave})"
        )

    async def run(self, parent_stop: Optional[asyncio.Event] = None):
        """
        Ejecuta el starter hasta que se solicite el apagado.

        Args:
            parent_stop: Evento de cancelación del starter padre (esclavos)

        Raises:
            GenerationError: Si no se pudo crear el ID propio
            OSError: Si no se pudo abrir el listener de la API de control
        """
        watcher = None
        if parent_stop is not None:
            watcher = asyncio.create_task(self._watch_parent(parent_stop))

        try:
            await self.bootstrap()
            if not self.shutdown_requested:
                await self.start_running()
                await self._stop_event.wait()
        finally:
            if watcher:
                watcher.cancel()
            await self.terminate()

    async def _watch_parent(self, parent_stop: asyncio.Event):
        await parent_stop.wait()
        self.request_shutdown()

    async def start_running(self):
        """Arranca los servidores del peer propio y anuncia que está listo."""
        self.set_state(ServiceState.RUNNING)
        me = self.own_peer

        try:
            await self.runner.start(me, self.config.mode, self.security.get_ssl_context())
        except (OSError, RuntimeError) as e:
            logger.error(f"Starter {self.id}: no se pudieron arrancar los servidores: {e}")
            return

        if self.config.mode == MODE_SINGLE:
            what, server_type = WHAT_SINGLE, ServerType.SINGLE
        else:
            what, server_type = WHAT_CLUSTER, ServerType.COORDINATOR

        scheme = "https" if self.security.is_secure else "http"
        host = me.address or LOOPBACK_ADDRESS
        url = f"{scheme}://{host}:{me.server_port(server_type)}"
        logger.info(ready_message(what, url))
