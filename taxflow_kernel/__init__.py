"""
Taxflow Kernel - workflow orchestration core

Persistence, domain types and services for the tax-compliance workflow
layer:
- Workflow definitions, triggers and instances
- Multi-step payment approval chains
- Compliance deadline monitoring and penalties
- Communication routing and escalation
"""

__version__ = "0.1.0"
