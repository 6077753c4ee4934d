"""Integrations module - External service connectors."""

from agent_crm.integrations.inference import InferenceService, inference_service
from agent_crm.integrations.email import EmailService, email_service

__all__ = [
    "InferenceService",
    "inference_service",
    "EmailService",
    "email_service",
]
