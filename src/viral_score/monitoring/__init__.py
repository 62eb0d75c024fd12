"""
Monitoring Layer - component health.

This module provides:
    - HealthChecker: database, chain, signer and score freshness checks
    - AggregateHealth / ComponentHealth / HealthStatus: check results
"""

from .health_checker import AggregateHealth, ComponentHealth, HealthChecker, HealthStatus

__all__ = [
    "AggregateHealth",
    "ComponentHealth",
    "HealthChecker",
    "HealthStatus",
]
