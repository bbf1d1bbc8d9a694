"""
Esperas sobre el ciclo de vida de procesos starter.

Codifican el contrato de vivacidad: un starter anuncia que está listo con
una línea de log concreta, y se considera terminado cuando deja de
responder a GET /version varias veces seguidas.
"""
import asyncio
import logging
import re
import signal
from typing import Iterable, Optional

from client.api import StarterClient
from config import GONE_POLL_INTERVAL, READY_TIMEOUT, SHUTDOWN_TIMEOUT
from core.errors import StarterError

logger = logging.getLogger(__name__)

WHAT_CLUSTER = "cluster"
WHAT_SINGLE = "single server"

# Fallos consecutivos de GET /version para dar al starter por terminado
GONE_FAILURE_THRESHOLD = 3


def ready_pattern(what: str) -> re.Pattern:
    """Patrón de la línea de log que anuncia que el starter está listo."""
    return re.compile(f"Your {re.escape(what)} can now be accessed with a browser at")


def ready_message(what: str, url: str) -> str:
    """Línea de log que anuncia que el starter está listo."""
    return f"Your {what} can now be accessed with a browser at {url}"


async def wait_until_ready(
    process: asyncio.subprocess.Process,
    what: str,
    timeout: float = READY_TIMEOUT
) -> bool:
    """
    Espera a que el proceso escriba la línea de "listo" en su stdout.

    Args:
        process: Proceso lanzado con stdout=PIPE
        what: WHAT_CLUSTER o WHAT_SINGLE
        timeout: Segundos máximos de espera

    Returns:
        True si apareció la línea, False si venció el timeout o terminó el output
    """
    pattern = ready_pattern(what)

    async def scan() -> bool:
        while True:
            line = await process.stdout.readline()
            if not line:
                return False
            if pattern.search(line.decode('utf-8', errors='replace')):
                return True

    try:
        found = await asyncio.wait_for(scan(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Starter (pid {process.pid}) no está listo tras {timeout}s")
        return False

    if not found:
        logger.error(f"Starter (pid {process.pid}) terminó su salida sin estar listo")
    return found


async def wait_until_all_ready(
    processes: Iterable[asyncio.subprocess.Process],
    what: str,
    timeout: float = READY_TIMEOUT
) -> bool:
    """Espera en paralelo a que todos los procesos estén listos."""
    results = await asyncio.gather(
        *(wait_until_ready(p, what, timeout) for p in processes)
    )
    return all(results)


async def wait_until_gone(
    endpoint: str,
    interval: float = GONE_POLL_INTERVAL,
    client: Optional[StarterClient] = None
):
    """
    Espera hasta que el starter en endpoint deje de responder.

    Cualquier fallo de GET /version cuenta; solo tras 3 fallos seguidos se
    da por terminado. No tiene timeout propio: el llamador debe envolverlo
    (ej: asyncio.wait_for).
    """
    own_client = client is None
    c = client or StarterClient(endpoint)
    failures = 0
    try:
        while True:
            try:
                await c.version()
                failures = 0
            except StarterError as e:
                failures += 1
                logger.debug(f"{endpoint}: fallo {failures} consultando versión: {e}")

            if failures >= GONE_FAILURE_THRESHOLD:
                logger.debug(f"{endpoint}: starter terminado")
                return
            await asyncio.sleep(interval)
    finally:
        if own_client:
            await c.close()


async def shutdown_starter(endpoint: str, force: bool = False, jwt_secret: Optional[str] = None):
    """Apaga un starter vía POST /shutdown y espera a que desaparezca."""
    async with StarterClient(endpoint, jwt_secret=jwt_secret) as c:
        await c.shutdown(force=force)
        await wait_until_gone(endpoint, client=c)


async def send_intr_and_wait(
    process: asyncio.subprocess.Process,
    timeout: float = SHUTDOWN_TIMEOUT
) -> bool:
    """
    Envía SIGINT al proceso y espera a que termine.

    Returns:
        True si terminó dentro del timeout
    """
    if process.returncode is None:
        process.send_signal(signal.SIGINT)
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Starter (pid {process.pid}) no se detuvo en {timeout}s")
        return False
    return True
