"""
Paquete service - Instancia de starter del cluster.

Exporta la clase principal StarterService que combina todos
los componentes mediante herencia múltiple de mixins.

Módulos internos:
- service_core: Configuración, máquina de estados y apagado
- service_bootstrap: Relanzamiento y negociación de peers
- service_slaves: Esclavos locales
- service_http: API de control
"""

from service.service import StarterService
from service.service_core import ServiceConfig, ServiceState

__all__ = ['StarterService', 'ServiceConfig', 'ServiceState']
