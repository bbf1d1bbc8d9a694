"""
Runner simulado para testing y desarrollo.
Cada rol se sustituye por un pequeño servidor aiohttp que responde
GET /_api/version en el puerto que tendría el servidor real.
"""
import logging
import os
import ssl
from typing import Dict, List, Optional

from aiohttp import web

from client.models import ServerProcess
from config import LOOPBACK_ADDRESS, LISTEN_ADDRESS, STARTER_VERSION
from core.peers import Peer
from core.server_types import ServerType
from runner.runner_interface import Runner, server_types_for

logger = logging.getLogger(__name__)


class SimulatedRunner(Runner):
    """
    Runner en memoria. Con serve=False solo registra los descriptores
    sin abrir sockets.
    """

    def __init__(self, serve: bool = True):
        super().__init__()
        self.serve = serve
        self._processes: List[ServerProcess] = []
        self._runners: Dict[ServerType, web.AppRunner] = {}
        self._started = False
        self.stop_calls = 0

    def _create_app(self, server_type: ServerType) -> web.Application:
        app = web.Application()

        async def version(request: web.Request) -> web.Response:
            return web.json_response({
                "server": "simulated",
                "version": STARTER_VERSION,
                "role": server_type.value
            })

        app.router.add_get('/_api/version', version)
        return app

    async def start(
        self,
        peer: Peer,
        mode: str,
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> List[ServerProcess]:
        """Arranca un servidor simulado por rol."""
        ip = peer.address or LOOPBACK_ADDRESS
        processes = []

        for server_type in server_types_for(peer, mode):
            port = peer.server_port(server_type)
            if self.serve:
                runner = web.AppRunner(self._create_app(server_type))
                await runner.setup()
                self._runners[server_type] = runner
                site = web.TCPSite(
                    runner,
                    peer.address or LISTEN_ADDRESS,
                    port,
                    ssl_context=ssl_context
                )
                try:
                    await site.start()
                except OSError as e:
                    self.logger.error(f"Peer {peer.id}: no se pudo abrir {server_type.label} en {port}: {e}")
                    await self._release()
                    raise

            processes.append(ServerProcess(
                type=server_type,
                ip=ip,
                port=port,
                is_secure=ssl_context is not None,
                pid=os.getpid()
            ))
            self.logger.info(f"Peer {peer.id}: {server_type.label} simulado en {ip}:{port}")

        self._processes = processes
        self._started = True
        return list(processes)

    def processes(self) -> List[ServerProcess]:
        return list(self._processes)

    def servers_started(self) -> bool:
        return self._started

    async def stop(self, force: bool = False):
        """Detiene los servidores simulados."""
        self.stop_calls += 1
        await self._release()
        self._processes = []
        self._started = False

    async def _release(self):
        """Cierra los listeners abiertos."""
        for server_type, runner in list(self._runners.items()):
            await runner.cleanup()
            self.logger.debug(f"{server_type.label} simulado detenido")
        self._runners.clear()
