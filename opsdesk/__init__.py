"""
OpsDesk - record store and task hierarchy core for the internal
business-operations dashboard.
"""

__version__ = "0.1.0"
