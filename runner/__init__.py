"""
Ejecutores de servidores de base de datos.
Proporciona la interfaz abstracta y una implementación simulada.
"""
from runner.runner_interface import Runner, server_types_for
from runner.simulated_runner import SimulatedRunner

__all__ = [
    "Runner",
    "SimulatedRunner",
    "server_types_for",
]


def create_runner(mode: str = "simulated", **kwargs) -> Runner:
    """
    Crea el runner indicado por RUNNER_MODE.

    Args:
        mode: Tipo de runner ("simulated")

    Returns:
        Instancia de Runner
    """
    if mode == "simulated":
        return SimulatedRunner(**kwargs)
    raise ValueError(f"Modo de runner desconocido: {mode}")
