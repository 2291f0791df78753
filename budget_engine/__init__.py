"""
Budget Approval Engine

Service-desk automation for contracted clients:
- Auto approve / auto reject against the client budget
- Contract validity window enforcement
- SLA breach penalties on the final cost
- One-time budget reconciliation on resolution
"""

__version__ = "0.1.0"
