"""
Generación de IDs únicos de peers.
Sin coordinación: cada starter genera su propio ID desde la entropía del SO.
"""
import logging
import os

from core.errors import GenerationError

logger = logging.getLogger(__name__)

# Bytes aleatorios por ID (hex → 8 caracteres)
ID_BYTES = 4


def create_unique_id() -> str:
    """
    Genera un ID de peer con probabilidad de colisión despreciable.

    Returns:
        ID en hexadecimal

    Raises:
        GenerationError: Si la fuente de entropía no está disponible
    """
    try:
        raw = os.urandom(ID_BYTES)
    except (NotImplementedError, OSError) as e:
        raise GenerationError(f"Fuente de entropía no disponible: {e}") from e

    peer_id = raw.hex()
    logger.debug(f"Generado ID de peer {peer_id}")
    return peer_id


def validate_peer_id(peer_id: str) -> bool:
    """
    Valida que un ID tenga forma aceptable (no vacío, sin espacios).

    Args:
        peer_id: ID a validar

    Returns:
        True si es válido, False si no
    """
    return bool(peer_id) and isinstance(peer_id, str) and not any(c.isspace() for c in peer_id)
