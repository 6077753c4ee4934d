"""Core module - Configuration, database and errors."""

from agent_crm.core.config import get_settings, Settings, CompanyProfile
from agent_crm.core.database import DatabaseService, db_service

__all__ = [
    "get_settings",
    "Settings",
    "CompanyProfile",
    "DatabaseService",
    "db_service",
]
