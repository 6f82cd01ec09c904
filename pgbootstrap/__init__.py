# -*- coding: utf-8 -*-
"""
Provision a single host into a publicly reachable PostgreSQL/PostGIS server.
"""

__version__ = "1.0.0"
