"""
Configuración compartida de fixtures para pytest
"""
import os
import shutil
import sys
import tempfile

import pytest

# Agregar raíz del proyecto al path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def pytest_configure(config):
    """Registrar markers personalizados"""
    config.addinivalue_line("markers", "integration: tests que levantan servidores HTTP reales")
    config.addinivalue_line("markers", "process: tests que lanzan starter.py como subproceso")


@pytest.fixture
def temp_data_dir():
    """Fixture que crea directorio de datos temporal para tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)
