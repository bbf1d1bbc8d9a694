"""
Cliente HTTP de la API de control de un starter.
Usa aiohttp para requests asíncronos.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from client.models import ProcessList, VersionInfo
from config import HTTP_TIMEOUT
from core.errors import StarterError, UnreachableError
from core.peers import Peers
from security import SecurityManager

logger = logging.getLogger(__name__)


class APIError(StarterError):
    """El starter respondió con un status de error."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        super().__init__(f"HTTP {status}: {message}")


class StarterClient:
    """
    Cliente de la API de control (version, processes, shutdown, hello...).

    Ejemplo de uso:
        async with StarterClient("http://localhost:8528") as c:
            info = await c.version()
            processes = await c.processes()
            await c.shutdown(force=False)
    """

    def __init__(
        self,
        endpoint: str,
        jwt_secret: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT
    ):
        """
        Args:
            endpoint: URL base del starter (ej: "http://localhost:8528")
            jwt_secret: Secret para firmar tokens (None = sin autenticación)
            timeout: Timeout por request en segundos
        """
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.security = SecurityManager(jwt_secret=jwt_secret)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> 'StarterClient':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def start(self):
        """Crea la sesión HTTP."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        """Cierra la sesión HTTP."""
        if self._session:
            await self._session.close()
            self._session = None

    def _headers(self) -> Dict[str, str]:
        if not self.security.auth_required:
            return {}
        return {"Authorization": f"bearer {self.security.generate_token()}"}

    async def _request(self, method: str, path: str, data: Optional[Dict] = None) -> Any:
        """
        Ejecuta un request y retorna el JSON de respuesta.

        Raises:
            UnreachableError: Si el starter no responde
            APIError: Si responde con status distinto de 200
        """
        await self.start()
        url = f"{self.endpoint}{path}"
        try:
            # Certificados autofirmados: no se verifica la cadena
            async with self._session.request(
                method,
                url,
                json=data,
                headers=self._headers(),
                ssl=False
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise APIError(response.status, text)
                return await response.json()
        except asyncio.TimeoutError as e:
            raise UnreachableError(url, "timeout") from e
        except aiohttp.ClientError as e:
            raise UnreachableError(url, str(e)) from e

    async def version(self) -> VersionInfo:
        """GET /version"""
        return VersionInfo.from_dict(await self._request("GET", "/version"))

    async def id(self) -> str:
        """GET /id"""
        return (await self._request("GET", "/id"))["id"]

    async def processes(self) -> ProcessList:
        """GET /processes"""
        return ProcessList.from_dict(await self._request("GET", "/processes"))

    async def status(self) -> Dict:
        """GET /status"""
        return await self._request("GET", "/status")

    async def peers(self) -> Peers:
        """GET /peers"""
        return Peers.from_dict(await self._request("GET", "/peers"))

    async def hello(
        self,
        peer_id: str,
        address: str,
        port: int,
        data_dir: str,
        is_secure: bool = False
    ) -> Peers:
        """
        POST /hello: se une al registro de peers del master.

        Returns:
            Registro de peers del master tras la unión
        """
        body = {
            "id": peer_id,
            "address": address,
            "port": port,
            "data_dir": data_dir,
            "is_secure": is_secure
        }
        return Peers.from_dict(await self._request("POST", "/hello", body))

    async def shutdown(self, force: bool = False) -> None:
        """POST /shutdown: inicia el apagado del starter."""
        await self._request("POST", "/shutdown", {"force": force})
