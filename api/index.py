"""
Serverless entry point for DesignDesk Core API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "sla_config.yaml")

from mangum import Mangum
from designdesk.main import app

# Lambda handler for ASGI app (lifespan off: no table creation, nothing to warm up)
handler = Mangum(app, lifespan="off")
