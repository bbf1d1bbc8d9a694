"""
Script de entrada del starter.
Lee la configuración desde variables de entorno y ejecuta el starter
hasta recibir SIGINT/SIGTERM o POST /shutdown.
"""
import asyncio
import os
import signal
import sys
import logging

from config import (
    DEFAULT_AGENCY_SIZE,
    DEFAULT_MASTER_PORT,
    MODE_CLUSTER,
    setup_logging,
)
from service import ServiceConfig, StarterService

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def config_from_env() -> ServiceConfig:
    """
    Construye la configuración del starter desde variables de entorno.

    Raises:
        ValueError: Si algún valor no es válido
    """
    return ServiceConfig(
        data_dir=os.getenv('DATA_DIR', '.'),
        id=os.getenv('STARTER_ID', ''),
        mode=os.getenv('STARTER_MODE', MODE_CLUSTER),
        own_address=os.getenv('STARTER_ADDRESS', ''),
        master_address=os.getenv('MASTER_ADDRESS', ''),
        master_port=int(os.getenv('STARTER_PORT', str(DEFAULT_MASTER_PORT))),
        agency_size=int(os.getenv('AGENCY_SIZE', str(DEFAULT_AGENCY_SIZE))),
        start_local_slaves=_env_bool('LOCAL_SLAVES'),
        enable_tls=_env_bool('SSL_ENABLED'),
        cert_dir=os.getenv('SSL_CERT_DIR', 'certs'),
        jwt_secret=os.getenv('JWT_SECRET', ''),
    )


async def main() -> int:
    setup_logging(verbose=_env_bool('VERBOSE'))

    try:
        config = config_from_env()
        os.makedirs(config.data_dir, exist_ok=True)
        service = StarterService(config)
    except (ValueError, OSError) as e:
        logger.error(f"Configuración inválida: {e}")
        return 2

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, service.request_shutdown)

    logger.info(
        f"Iniciando starter (mode={config.mode}, data_dir={config.data_dir}, "
        f"port={config.master_port})"
    )

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Error fatal del starter: {e}")
        return 1
    return 0


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
