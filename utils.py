"""
Utilidades comunes del starter.
"""
from typing import Tuple


def join_host_port(host: str, port: int) -> str:
    """
    Une host y puerto en "host:port" (IPv6 entre corchetes).

    Args:
        host: Hostname o IP
        port: Puerto

    Returns:
        Dirección formateada
    """
    if ":" in host and not host.startswith("["):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def split_host_port(address: str) -> Tuple[str, int]:
    """
    Separa "host:port" en sus componentes.

    Raises:
        ValueError: Si la dirección no tiene puerto válido
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Dirección sin puerto: {address!r}")
    return host.strip("[]"), int(port)


def endpoint_url(address: str, secure: bool = False) -> str:
    """
    Construye la URL base de un starter desde "host:port".

    Example:
        >>> endpoint_url("127.0.0.1:8528")
        'http://127.0.0.1:8528'
    """
    scheme = "https" if secure else "http"
    return f"{scheme}://{address}"

