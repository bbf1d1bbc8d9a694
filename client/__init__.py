"""
Cliente de la API de control del starter y esperas de ciclo de vida.
"""
from client.api import StarterClient, APIError
from client.models import ServerProcess, ProcessList, VersionInfo
from client.lifecycle import (
    WHAT_CLUSTER,
    WHAT_SINGLE,
    wait_until_ready,
    wait_until_all_ready,
    wait_until_gone,
    shutdown_starter,
    send_intr_and_wait,
)

__all__ = [
    "StarterClient",
    "APIError",
    "ServerProcess",
    "ProcessList",
    "VersionInfo",
    "WHAT_CLUSTER",
    "WHAT_SINGLE",
    "wait_until_ready",
    "wait_until_all_ready",
    "wait_until_gone",
    "shutdown_starter",
    "send_intr_and_wait",
]
