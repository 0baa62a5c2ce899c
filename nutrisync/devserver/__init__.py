# -*- coding: utf-8 -*-
"""Local stand-in for the hosted data service (PostgREST dialect)."""

from .api import create_app

__all__ = ["create_app"]
