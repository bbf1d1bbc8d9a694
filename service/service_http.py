"""
Módulo de API HTTP de control.
Maneja el servidor HTTP y los endpoints REST del starter.
"""
import logging
from typing import Optional
from aiohttp import web

from client.models import ProcessList
from config import STARTER_BUILD, STARTER_VERSION
from metrics import export_metrics

logger = logging.getLogger(__name__)


class ServiceHTTP:
    """
    Mixin que añade la API de control al starter.
    Requiere que la clase tenga: id, config, state, peers, security, runner,
    announce_port, handle_hello, request_shutdown, local_slaves
    """

    def __init__(self):
        """Inicializa servidor HTTP."""
        self.app: Optional[web.Application] = None
        self.http_runner: Optional[web.AppRunner] = None

    def create_http_app(self) -> web.Application:
        """
        Crea aplicación aiohttp con todas las rutas.

        Returns:
            Aplicación web configurada
        """
        app = web.Application()

        app.router.add_get('/version', self._http_version)
        app.router.add_get('/id', self._http_id)
        app.router.add_get('/processes', self._http_processes)
        app.router.add_get('/status', self._http_status)
        app.router.add_get('/peers', self._http_peers)
        app.router.add_get('/metrics', self._http_metrics)
        app.router.add_post('/hello', self._http_hello)
        app.router.add_post('/shutdown', self._http_shutdown)

        return app

    async def start_http_server(self):
        """
        Inicia servidor HTTP en el puerto anunciado.
        Un fallo de bind es fatal y se propaga.
        """
        if self.http_runner:
            return

        self.app = self.create_http_app()
        self.http_runner = web.AppRunner(self.app)
        await self.http_runner.setup()

        ssl_context = self.security.get_ssl_context()
        site = web.TCPSite(
            self.http_runner,
            self.config.listen_address,
            self.announce_port,
            ssl_context=ssl_context
        )
        try:
            await site.start()
        except OSError:
            await self.http_runner.cleanup()
            self.http_runner = None
            raise

        protocol = "https" if ssl_context else "http"
        logger.info(
            f"Starter {self.id}: API de control en "
            f"{protocol}://{self.config.listen_address}:{self.announce_port}"
        )

    async def stop_http_server(self):
        """Detiene servidor HTTP limpiamente."""
        if self.http_runner:
            await self.http_runner.cleanup()
            self.http_runner = None
            logger.info(f"Starter {self.id}: API de control detenida")

    def _authorized(self, request: web.Request) -> bool:
        return self.security.verify_authorization_header(request.headers.get('Authorization'))

    # ══════════════════════════════════════════════════════════
    # Handlers
    # ══════════════════════════════════════════════════════════

    async def _http_version(self, request: web.Request) -> web.Response:
        """
        GET /version

        Returns: {"version": "0.2.1", "build": "dev"}
        """
        return web.json_response({'version': STARTER_VERSION, 'build': STARTER_BUILD})

    async def _http_id(self, request: web.Request) -> web.Response:
        """GET /id"""
        return web.json_response({'id': self.id})

    async def _http_processes(self, request: web.Request) -> web.Response:
        """
        GET /processes

        Returns: {
            "servers": [
                {"type": "coordinator", "ip": "127.0.0.1", "port": 8529,
                 "is_secure": false, "pid": 1234},
                ...
            ],
            "servers-started": true
        }
        """
        processes = ProcessList(
            servers=self.runner.processes(),
            servers_started=self.runner.servers_started()
        )
        return web.json_response(processes.to_dict())

    async def _http_status(self, request: web.Request) -> web.Response:
        """
        GET /status

        Returns: {
            "id": "a1b2c3d4",
            "state": "running",
            "mode": "cluster",
            "is_master": true,
            "peers": 3,
            "agency_size": 3,
            "local_slaves": 2
        }
        """
        return web.json_response({
            'id': self.id,
            'state': self.state.value,
            'mode': self.config.mode,
            'is_master': self.is_master,
            'peers': len(self.peers),
            'agency_size': self.agency_size,
            'local_slaves': len(self.local_slaves)
        })

    async def _http_peers(self, request: web.Request) -> web.Response:
        """
        GET /peers

        Returns: snapshot confirmado del registro de peers
        """
        return web.json_response(self.peers.to_dict())

    async def _http_metrics(self, request: web.Request) -> web.Response:
        """
        GET /metrics

        Returns: Métricas en formato Prometheus
        """
        return web.Response(
            body=export_metrics(),
            content_type='text/plain',
            charset='utf-8'
        )

    async def _http_hello(self, request: web.Request) -> web.Response:
        """
        POST /hello

        Body: {"id", "address", "port", "data_dir", "is_secure"}

        Returns: registro de peers tras la unión
        """
        if not self._authorized(request):
            return web.json_response({'error': 'no autorizado'}, status=401)
        try:
            data = await request.json()
            if not isinstance(data, dict):
                raise ValueError('Body debe ser un objeto JSON')
            peers = self.handle_hello(data)
        except ValueError as e:
            return web.json_response({'error': str(e)}, status=400)
        return web.json_response(peers.to_dict())

    async def _http_shutdown(self, request: web.Request) -> web.Response:
        """
        POST /shutdown

        Body: {"force": false}  // opcional

        Returns: {"status": "shutting_down"}
        """
        if not self._authorized(request):
            return web.json_response({'error': 'no autorizado'}, status=401)

        force = False
        if request.can_read_body:
            try:
                data = await request.json()
            except ValueError:
                return web.json_response({'error': 'JSON inválido'}, status=400)
            if isinstance(data, dict):
                force = bool(data.get('force', False))

        self.request_shutdown(force=force)
        return web.json_response({'status': 'shutting_down'})
