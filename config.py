"""
Configuración del starter de cluster.
"""

# Versión del starter (expuesta en GET /version)
STARTER_VERSION = "0.2.1"
STARTER_BUILD = "dev"

# Registro de setup persistido
# Si cambia la estructura de setup.json o su semántica, hay que subir esta versión
SETUP_CONFIG_VERSION = "0.2.1"
SETUP_FILE_NAME = "setup.json"

# Configuración de red
DEFAULT_MASTER_PORT = 8528
PORT_OFFSET_INCREMENT = 5  # Separación de puertos entre peers del mismo host
LOOPBACK_ADDRESS = "127.0.0.1"
LISTEN_ADDRESS = "0.0.0.0"

# Modos del starter
MODE_CLUSTER = "cluster"
MODE_SINGLE = "single"
DEFAULT_AGENCY_SIZE = 3

# Ejecutor de servidores de base de datos
RUNNER_MODE = "simulated"  # Por ahora solo "simulated"

# Timeouts (segundos)
HELLO_RETRY_INTERVAL = 1.0
PEERS_POLL_INTERVAL = 0.5
SLAVE_JOIN_TIMEOUT = 20.0
RUNNER_STOP_TIMEOUT = 20.0
SHUTDOWN_TIMEOUT = 30.0
READY_TIMEOUT = 60.0
GONE_POLL_INTERVAL = 0.2
HTTP_TIMEOUT = 10

# Configuración de logging
LOG_LEVEL = "INFO"  # DEBUG, INFO, WARNING, ERROR

import logging
import sys

# Configurar logging con UTF-8
def setup_logging(verbose: bool = False):
    """Configura logging con soporte UTF-8 hacia stdout."""
    handler = logging.StreamHandler(sys.stdout)

    # Intentar configurar UTF-8, con fallback al encoding por defecto
    if hasattr(handler.stream, 'reconfigure'):
        try:
            handler.stream.reconfigure(encoding='utf-8', errors='replace')
        except (ValueError, OSError):
            pass

    handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else LOG_LEVEL)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
