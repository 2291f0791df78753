"""
External system integrations.
"""

from .jira import JiraGateway, GatewayError

__all__ = ["JiraGateway", "GatewayError"]
