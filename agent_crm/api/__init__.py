"""API module - HTTP entry points."""

from agent_crm.api.routes import routers, status_code_for

__all__ = ["routers", "status_code_for"]
