"""Agent CRM - autonomous agent orchestration and escalation engine."""

__version__ = "1.0.0"
