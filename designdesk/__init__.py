"""
DesignDesk Core
===============

Business-hours SLA tracking and reliable webhook ingestion.
"""

__version__ = "1.0.0"
