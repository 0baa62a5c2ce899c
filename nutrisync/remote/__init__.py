# -*- coding: utf-8 -*-
"""Remote collection gateways."""

from .gateway import Filter, RemoteGateway, Row
from .memory import InMemoryDatabase, InMemoryGateway
from .rest import RestGateway

__all__ = [
    "Filter",
    "InMemoryDatabase",
    "InMemoryGateway",
    "RemoteGateway",
    "RestGateway",
    "Row",
]
