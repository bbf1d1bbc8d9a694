"""
Módulo de almacenamiento del starter.
Gestiona el registro de setup persistido y la decisión de relanzamiento.
"""
from storage.setup_config import (
    SetupConfigFile,
    SetupStore,
    Relaunched,
    FreshStart,
    FreshStartReason,
    RelaunchOutcome,
)

__all__ = [
    "SetupConfigFile",
    "SetupStore",
    "Relaunched",
    "FreshStart",
    "FreshStartReason",
    "RelaunchOutcome",
]
