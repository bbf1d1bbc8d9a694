"""
Persistencia del registro de setup (setup.json) y decisión de relanzamiento.

El registro se escribe de forma atómica (archivo temporal + rename) dentro
del directorio de datos del starter y se lee una sola vez al arrancar.
"""
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Union

from config import SETUP_CONFIG_VERSION, SETUP_FILE_NAME
from core.errors import PersistError
from core.peers import Peers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetupConfigFile:
    """Snapshot versionado del estado de peers de un starter."""
    version: str
    id: str
    peers: Peers
    start_local_slaves: bool = False

    def to_dict(self) -> Dict:
        """Serializa al formato JSON de setup.json."""
        data = {
            "version": self.version,
            "id": self.id,
            "peers": self.peers.to_dict(),
        }
        if self.start_local_slaves:
            data["start-local-slaves"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'SetupConfigFile':
        """
        Deserializa desde el formato JSON de setup.json.

        Raises:
            ValueError: Si la estructura no es válida
        """
        if not isinstance(data, dict):
            raise ValueError("setup.json no contiene un objeto")
        version = data.get("version")
        own_id = data.get("id")
        start_local_slaves = data.get("start-local-slaves", False)
        if not isinstance(version, str):
            raise ValueError("Campo 'version' ausente o inválido")
        if not isinstance(own_id, str) or not own_id:
            raise ValueError("Campo 'id' ausente o inválido")
        if not isinstance(start_local_slaves, bool):
            raise ValueError("Campo 'start-local-slaves' inválido")
        return cls(
            version=version,
            id=own_id,
            peers=Peers.from_dict(data.get("peers")),
            start_local_slaves=start_local_slaves
        )


class FreshStartReason(Enum):
    """Motivo por el que no se relanza."""
    MISSING = "missing"
    UNREADABLE = "unreadable"
    OUTDATED = "outdated"


@dataclass(frozen=True)
class Relaunched:
    """Existe un setup válido: se reanuda con la identidad y peers guardados."""
    record: SetupConfigFile


@dataclass(frozen=True)
class FreshStart:
    """No hay setup utilizable: se negocia desde cero."""
    reason: FreshStartReason
    detail: str = ""


RelaunchOutcome = Union[Relaunched, FreshStart]


class SetupStore:
    """
    Lee y escribe setup.json en el directorio de datos de un starter.
    """

    def __init__(self, data_dir: str, expected_version: str = SETUP_CONFIG_VERSION):
        """
        Args:
            data_dir: Directorio de datos del starter
            expected_version: Versión de esquema que entiende este código
        """
        self.data_dir = Path(data_dir)
        self.expected_version = expected_version

    @property
    def path(self) -> Path:
        return self.data_dir / SETUP_FILE_NAME

    def save(self, peers: Peers, own_id: str, start_local_slaves: bool) -> SetupConfigFile:
        """
        Guarda el setup actual reemplazando el anterior de forma atómica.

        Args:
            peers: Registro de peers confirmado
            own_id: ID de este starter
            start_local_slaves: Si este starter lanza esclavos locales

        Returns:
            Registro escrito

        Raises:
            PersistError: Si no se pudo serializar o escribir
        """
        record = SetupConfigFile(
            version=self.expected_version,
            id=own_id,
            peers=peers,
            start_local_slaves=start_local_slaves
        )
        try:
            content = json.dumps(record.to_dict(), indent=2)
        except (TypeError, ValueError) as e:
            logger.error(f"No se puede serializar el setup: {e}")
            raise PersistError(f"Serialización fallida: {e}") from e

        tmp_path = None
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{SETUP_FILE_NAME}.", suffix=".tmp", dir=str(self.data_dir)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error escribiendo {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistError(f"Escritura fallida de {self.path}: {e}") from e

        logger.debug(f"Setup guardado: {self.path} ({len(peers)} peers)")
        return record

    def load(self) -> RelaunchOutcome:
        """
        Lee setup.json y decide entre relanzar o empezar de cero.

        No tiene efectos secundarios: un fallo aquí deja el registro anterior
        intacto para el siguiente intento.

        Returns:
            Relaunched con el registro, o FreshStart con el motivo
        """
        try:
            content = self.path.read_bytes()
        except FileNotFoundError:
            return FreshStart(FreshStartReason.MISSING)
        except OSError as e:
            logger.warning(f"No se puede leer {self.path}: {e}")
            return FreshStart(FreshStartReason.UNREADABLE, str(e))

        try:
            # UnicodeDecodeError también es ValueError
            raw = json.loads(content)
        except ValueError as e:
            logger.warning(f"No se puede interpretar {SETUP_FILE_NAME} existente: {e}")
            return FreshStart(FreshStartReason.UNREADABLE, str(e))

        version = raw.get("version") if isinstance(raw, dict) else None
        if isinstance(version, str) and version != self.expected_version:
            logger.warning(
                f"{SETUP_FILE_NAME} está desactualizado "
                f"(versión {version}, se espera {self.expected_version}). Empezando de cero..."
            )
            return FreshStart(FreshStartReason.OUTDATED, version)

        try:
            record = SetupConfigFile.from_dict(raw)
        except ValueError as e:
            logger.warning(f"{SETUP_FILE_NAME} existente no es válido: {e}")
            return FreshStart(FreshStartReason.UNREADABLE, str(e))

        return Relaunched(record)

    def try_relaunch(self) -> RelaunchOutcome:
        """Punto de entrada al arrancar: equivalente a load()."""
        outcome = self.load()
        if isinstance(outcome, Relaunched):
            logger.info(
                f"Setup encontrado en {self.path}: id '{outcome.record.id}', "
                f"{len(outcome.record.peers)} peers"
            )
        return outcome
