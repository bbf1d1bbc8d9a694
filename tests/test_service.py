"""
Tests de integración end-to-end del starter en el mismo proceso.
"""
import asyncio
import json
import os

import pytest
from aiohttp.test_utils import unused_port

from client import StarterClient, wait_until_gone
from config import MODE_CLUSTER, MODE_SINGLE, SETUP_CONFIG_VERSION, SETUP_FILE_NAME
from core.errors import GenerationError
from core.peers import Peer, Peers
from core.server_types import ServerType
from runner import SimulatedRunner
from service import ServiceConfig, ServiceState, StarterService
from service import service_bootstrap


def make_config(data_dir, port, **kwargs) -> ServiceConfig:
    kwargs.setdefault("mode", MODE_SINGLE)
    return ServiceConfig(
        data_dir=data_dir,
        master_port=port,
        listen_address="127.0.0.1",
        **kwargs
    )


async def wait_for_state(service, state, timeout=10.0):
    async def poll():
        while service.state != state:
            await asyncio.sleep(0.05)
    await asyncio.wait_for(poll(), timeout)


def read_setup(data_dir):
    with open(os.path.join(data_dir, SETUP_FILE_NAME), encoding='utf-8') as f:
        return json.load(f)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_single_fresh_start_writes_setup(temp_data_dir):
    """Test arranque de cero: setup.json con un peer con el ID generado."""
    port = unused_port()
    service = StarterService(make_config(temp_data_dir, port), runner=SimulatedRunner(serve=False))
    task = asyncio.create_task(service.run())
    try:
        await wait_for_state(service, ServiceState.RUNNING)

        data = read_setup(temp_data_dir)
        assert data["version"] == SETUP_CONFIG_VERSION
        assert data["id"] == service.id
        assert [p["id"] for p in data["peers"]["peers"]] == [service.id]
        assert data["peers"]["agency_size"] == 1
        assert "start-local-slaves" not in data

        async with StarterClient(f"http://127.0.0.1:{port}") as c:
            assert await c.id() == service.id
            processes = await c.processes()
            single = processes.server_by_type(ServerType.SINGLE)
            assert single is not None
            assert single.port == port + 1
            assert processes.server_by_type(ServerType.COORDINATOR) is None
    finally:
        service.request_shutdown()
        await asyncio.wait_for(task, 10.0)

    assert service.state == ServiceState.TERMINATED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_relaunch_resumes_identity(temp_data_dir):
    """Test un segundo arranque reanuda el mismo ID sin negociar."""
    port = unused_port()

    first = StarterService(make_config(temp_data_dir, port), runner=SimulatedRunner(serve=False))
    task = asyncio.create_task(first.run())
    await wait_for_state(first, ServiceState.RUNNING)
    first.request_shutdown()
    await asyncio.wait_for(task, 10.0)

    second = StarterService(make_config(temp_data_dir, port), runner=SimulatedRunner(serve=False))
    states = []
    original_set_state = second.set_state

    def record_state(state):
        states.append(state)
        original_set_state(state)

    second.set_state = record_state
    task = asyncio.create_task(second.run())
    try:
        await wait_for_state(second, ServiceState.RUNNING)
        assert second.id == first.id
        assert ServiceState.RELAUNCHING in states
        assert ServiceState.NEGOTIATING not in states
    finally:
        second.request_shutdown()
        await asyncio.wait_for(task, 10.0)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_outdated_setup_starts_fresh(temp_data_dir):
    """Test un setup con otra versión lleva a un arranque de cero."""
    port = unused_port()
    with open(os.path.join(temp_data_dir, SETUP_FILE_NAME), 'w', encoding='utf-8') as f:
        json.dump({
            "version": "0.1.0",
            "id": "oldpeer1",
            "peers": {"peers": [], "agency_size": 1}
        }, f)

    service = StarterService(make_config(temp_data_dir, port), runner=SimulatedRunner(serve=False))
    task = asyncio.create_task(service.run())
    try:
        await wait_for_state(service, ServiceState.RUNNING)
        assert service.id != "oldpeer1"
        assert read_setup(temp_data_dir)["version"] == SETUP_CONFIG_VERSION
    finally:
        service.request_shutdown()
        await asyncio.wait_for(task, 10.0)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shutdown_twice_runs_one_termination(temp_data_dir):
    """Test apagado idempotente: una sola secuencia de terminación."""
    port = unused_port()
    runner = SimulatedRunner(serve=False)
    service = StarterService(make_config(temp_data_dir, port), runner=runner)
    task = asyncio.create_task(service.run())
    await wait_for_state(service, ServiceState.RUNNING)

    async with StarterClient(f"http://127.0.0.1:{port}") as c:
        await c.shutdown()
        # El segundo llamado puede llegar o encontrar el servidor ya cerrado
        assert service.request_shutdown() is False
        await asyncio.wait_for(wait_until_gone(f"http://127.0.0.1:{port}", interval=0.05, client=c), 10.0)

    await asyncio.wait_for(task, 10.0)
    await service.terminate()

    assert runner.stop_calls == 1
    assert service.state == ServiceState.TERMINATED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_shutdown_during_negotiation(temp_data_dir):
    """Test un esclavo sin master alcanzable se apaga ordenadamente."""
    port = unused_port()
    config = make_config(
        temp_data_dir, port,
        mode=MODE_CLUSTER,
        master_address=f"127.0.0.1:{unused_port()}"
    )
    service = StarterService(config, runner=SimulatedRunner(serve=False))
    task = asyncio.create_task(service.run())
    await wait_for_state(service, ServiceState.NEGOTIATING)

    service.request_shutdown()
    await asyncio.wait_for(task, 10.0)

    assert service.state == ServiceState.TERMINATED
    assert not service.runner.servers_started()
    assert not os.path.exists(os.path.join(temp_data_dir, SETUP_FILE_NAME))


@pytest.mark.asyncio
async def test_own_id_failure_is_fatal(temp_data_dir, monkeypatch):
    """Test no poder crear el ID propio termina el starter con error."""
    def no_entropy():
        raise GenerationError("sin entropía")

    monkeypatch.setattr(service_bootstrap, "create_unique_id", no_entropy)
    service = StarterService(make_config(temp_data_dir, unused_port()), runner=SimulatedRunner(serve=False))

    with pytest.raises(GenerationError):
        await service.run()
    assert service.state == ServiceState.TERMINATED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_bind_failure_is_fatal(temp_data_dir):
    """Test no poder abrir el listener propio es fatal."""
    port = unused_port()
    blocker = StarterService(make_config(temp_data_dir, port), runner=SimulatedRunner(serve=False))
    blocker_task = asyncio.create_task(blocker.run())
    await wait_for_state(blocker, ServiceState.RUNNING)

    other_dir = os.path.join(temp_data_dir, "other")
    os.makedirs(other_dir)
    service = StarterService(make_config(other_dir, port), runner=SimulatedRunner(serve=False))
    try:
        with pytest.raises(OSError):
            await service.run()
    finally:
        blocker.request_shutdown()
        await asyncio.wait_for(blocker_task, 10.0)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cluster_with_local_slaves(temp_data_dir):
    """Test cluster de 3 agentes en un host con esclavos locales y relanzamiento."""
    port = unused_port()
    config = make_config(
        temp_data_dir, port,
        mode=MODE_CLUSTER,
        agency_size=3,
        start_local_slaves=True
    )

    def factory():
        return SimulatedRunner(serve=False)

    master = StarterService(config, runner=factory(), runner_factory=factory)
    task = asyncio.create_task(master.run())
    try:
        await wait_for_state(master, ServiceState.RUNNING, timeout=20.0)

        assert len(master.peers) == 3
        assert master.peers.have_enough_agents()
        assert len(master.local_slaves) == 2
        for slave in master.local_slaves:
            await wait_for_state(slave, ServiceState.RUNNING, timeout=20.0)
            assert slave.config.master_address == f"127.0.0.1:{port}"
            assert slave.own_peer.port_offset in (5, 10)
            assert os.path.exists(os.path.join(slave.config.data_dir, SETUP_FILE_NAME))

        data = read_setup(temp_data_dir)
        assert data["start-local-slaves"] is True
        assert len(data["peers"]["peers"]) == 3
        slave_ids = [p["id"] for p in data["peers"]["peers"][1:]]
    finally:
        master.request_shutdown()
        await asyncio.wait_for(task, 30.0)

    assert master.state == ServiceState.TERMINATED
    assert all(s.state == ServiceState.TERMINATED for s in master.local_slaves)

    # Relanzamiento: mismos esclavos, sin asignar identidades nuevas
    relaunched = StarterService(config, runner=factory(), runner_factory=factory)
    task = asyncio.create_task(relaunched.run())
    try:
        await wait_for_state(relaunched, ServiceState.RUNNING, timeout=20.0)
        assert relaunched.id == data["id"]
        assert [s.config.id for s in relaunched.local_slaves] == slave_ids
        for slave in relaunched.local_slaves:
            await wait_for_state(slave, ServiceState.RUNNING, timeout=20.0)
    finally:
        relaunched.request_shutdown()
        await asyncio.wait_for(task, 30.0)


@pytest.mark.parametrize("kwargs", [
    {"mode": "replica"},
    {"agency_size": 0},
    {"master_address": "sin-puerto"},
    {"id": "con espacio"},
])
def test_invalid_config_rejected(temp_data_dir, kwargs):
    """Test la configuración se valida al construir el starter."""
    with pytest.raises(ValueError):
        StarterService(make_config(temp_data_dir, 8528, **kwargs), runner=SimulatedRunner(serve=False))


class ForgetfulMaster:
    """Master que la primera vez responde un registro sin el peer que saluda."""

    def __init__(self, endpoint, jwt_secret=None):
        self.hellos = []
        ForgetfulMaster.instance = self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    async def hello(self, peer_id, address, port, data_dir, is_secure=False):
        self.hellos.append(peer_id)
        master = Peer(id="master01", data_dir="/tmp/m", port=port, has_agent=True)
        if len(self.hellos) == 1:
            return Peers(peers=(master,), agency_size=1)
        me = Peer(id=peer_id, data_dir=data_dir, port=port, port_offset=5)
        return Peers(peers=(master, me), agency_size=1)

    async def peers(self):
        raise AssertionError("el registro ya tiene agentes suficientes")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_slave_rejoins_when_master_forgets_it(temp_data_dir, monkeypatch):
    """Test un registro sin el peer propio no es fatal: se repite hello."""
    monkeypatch.setattr(service_bootstrap, "StarterClient", ForgetfulMaster)
    monkeypatch.setattr(service_bootstrap, "HELLO_RETRY_INTERVAL", 0.01)
    port = unused_port()
    config = make_config(
        temp_data_dir, port,
        mode=MODE_CLUSTER,
        id="slave001",
        master_address="127.0.0.1:8528"
    )
    service = StarterService(config, runner=SimulatedRunner(serve=False))
    task = asyncio.create_task(service.run())
    try:
        await wait_for_state(service, ServiceState.RUNNING)

        assert ForgetfulMaster.instance.hellos == ["slave001", "slave001"]
        assert service.own_peer.port_offset == 5
        assert read_setup(temp_data_dir)["id"] == "slave001"
    finally:
        service.request_shutdown()
        await asyncio.wait_for(task, 10.0)
