"""
Tests para la persistencia de setup.json y la decisión de relanzamiento.
"""
import json
import os

import pytest

from config import SETUP_CONFIG_VERSION, SETUP_FILE_NAME
from core.errors import PersistError
from core.peers import Peer, Peers
from storage.setup_config import (
    FreshStart,
    FreshStartReason,
    Relaunched,
    SetupStore,
)


@pytest.fixture
def peers():
    return Peers(
        peers=(
            Peer(id="master1", data_dir="/data", has_agent=True),
            Peer(id="slave01", data_dir="/data/local-slave-1", port_offset=5, has_agent=True),
            Peer(id="slave02", data_dir="/data/local-slave-2", port_offset=10, has_agent=True),
        ),
        agency_size=3
    )


def test_missing_file_is_fresh_start(temp_data_dir):
    """Test sin setup.json se empieza de cero."""
    outcome = SetupStore(temp_data_dir).try_relaunch()

    assert outcome == FreshStart(FreshStartReason.MISSING)


@pytest.mark.parametrize("flag", [True, False])
def test_save_load_roundtrip(temp_data_dir, peers, flag):
    """Test load(save(P, id, flag)) == (P, id, flag)."""
    store = SetupStore(temp_data_dir)
    store.save(peers, "master1", flag)

    outcome = store.load()

    assert isinstance(outcome, Relaunched)
    assert outcome.record.peers == peers
    assert outcome.record.id == "master1"
    assert outcome.record.start_local_slaves is flag
    assert outcome.record.version == SETUP_CONFIG_VERSION


def test_file_format(temp_data_dir, peers):
    """Test formato JSON de setup.json."""
    store = SetupStore(temp_data_dir)
    store.save(peers, "master1", False)

    with open(os.path.join(temp_data_dir, SETUP_FILE_NAME), encoding='utf-8') as f:
        data = json.load(f)

    assert data["version"] == SETUP_CONFIG_VERSION
    assert data["id"] == "master1"
    assert data["peers"]["agency_size"] == 3
    assert len(data["peers"]["peers"]) == 3
    # El flag se omite cuando es false
    assert "start-local-slaves" not in data

    store.save(peers, "master1", True)
    with open(os.path.join(temp_data_dir, SETUP_FILE_NAME), encoding='utf-8') as f:
        assert json.load(f)["start-local-slaves"] is True


def test_save_leaves_no_temp_files(temp_data_dir, peers):
    """Test escritura atómica no deja archivos temporales."""
    store = SetupStore(temp_data_dir)
    store.save(peers, "master1", False)
    store.save(peers, "master1", True)

    assert os.listdir(temp_data_dir) == [SETUP_FILE_NAME]


def test_version_mismatch_is_fresh_start(temp_data_dir, peers):
    """Test guardar con Vn y cargar esperando Vm siempre es FreshStart."""
    SetupStore(temp_data_dir, expected_version="0.1.0").save(peers, "master1", True)

    outcome = SetupStore(temp_data_dir, expected_version="0.2.1").try_relaunch()

    assert isinstance(outcome, FreshStart)
    assert outcome.reason == FreshStartReason.OUTDATED
    assert outcome.detail == "0.1.0"


def test_newer_version_is_fresh_start(temp_data_dir, peers):
    """Test no hay compatibilidad hacia adelante."""
    SetupStore(temp_data_dir, expected_version="9.0.0").save(peers, "master1", False)

    outcome = SetupStore(temp_data_dir).try_relaunch()

    assert outcome.reason == FreshStartReason.OUTDATED


@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    '{"version": "%s"}' % SETUP_CONFIG_VERSION,
    '{"version": "%s", "id": "x", "peers": {"peers": [], "agency_size": 1}, '
    '"start-local-slaves": "yes"}' % SETUP_CONFIG_VERSION,
    '{"version": "%s", "id": "x", "peers": {"peers": [{"id": 1}], "agency_size": 1}}'
    % SETUP_CONFIG_VERSION,
    b'{"version": "\xff\xfe"}',
    b'\xff\xfe\x00garbage',
])
def test_corrupted_file_is_fresh_start(temp_data_dir, content):
    """Test setup corrupto (texto o bytes no UTF-8) degrada a arranque de cero."""
    if isinstance(content, str):
        content = content.encode('utf-8')
    with open(os.path.join(temp_data_dir, SETUP_FILE_NAME), 'wb') as f:
        f.write(content)

    outcome = SetupStore(temp_data_dir).try_relaunch()

    assert isinstance(outcome, FreshStart)
    assert outcome.reason == FreshStartReason.UNREADABLE


def test_load_has_no_side_effects(temp_data_dir):
    """Test un setup desactualizado se deja intacto."""
    path = os.path.join(temp_data_dir, SETUP_FILE_NAME)
    with open(path, 'w', encoding='utf-8') as f:
        f.write('{"version": "0.0.1"}')

    SetupStore(temp_data_dir).try_relaunch()

    with open(path, encoding='utf-8') as f:
        assert f.read() == '{"version": "0.0.1"}'


def test_save_failure_raises_persist_error(temp_data_dir, peers):
    """Test fallo de escritura se reporta como PersistError."""
    # Un archivo en lugar de directorio hace fallar la escritura
    blocker = os.path.join(temp_data_dir, "blocker")
    with open(blocker, 'w') as f:
        f.write("x")

    store = SetupStore(os.path.join(blocker, "data"))

    with pytest.raises(PersistError):
        store.save(peers, "master1", False)
