"""
Métricas Prometheus para monitoreo del starter.
"""
from prometheus_client import Counter, Gauge, generate_latest, REGISTRY
import logging

logger = logging.getLogger(__name__)


# Definir métricas
starter_state = Gauge(
    'starter_state',
    'Estado del starter (0=starting, 1=relaunching, 2=negotiating, 3=running, 4=shutting_down, 5=terminated)',
    ['peer_id']
)

starter_peers = Gauge(
    'starter_peers',
    'Peers en el registro confirmado',
    ['peer_id']
)

starter_local_slaves = Gauge(
    'starter_local_slaves',
    'Esclavos locales lanzados por este starter',
    ['peer_id']
)

starter_relaunch_total = Counter(
    'starter_relaunch_total',
    'Arranques que reanudaron un setup persistido',
    ['peer_id']
)

starter_setup_save_failures_total = Counter(
    'starter_setup_save_failures_total',
    'Escrituras fallidas de setup.json',
    ['peer_id']
)


def export_metrics() -> bytes:
    """Exporta métricas en formato Prometheus."""
    return generate_latest(REGISTRY)
