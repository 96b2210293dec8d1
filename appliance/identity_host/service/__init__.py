"""
Service module - application graph, request pipeline and listener.
"""

from .assembler import ServiceAssembler, ServiceInstance, bind_listener
from .pipeline import HSTS_HEADER_VALUE, MIGRATIONS_ENDPOINT_PATH

__all__ = [
    "ServiceAssembler",
    "ServiceInstance",
    "bind_listener",
    "HSTS_HEADER_VALUE",
    "MIGRATIONS_ENDPOINT_PATH",
]
