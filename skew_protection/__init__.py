"""Deployment-skew-aware routing control plane.

Components:
- registry: deployments and immutable routing snapshots
- routing: affinity tokens and the per-request routing decision
- rollout: health-gated promotion and drain-aware retirement
- tokens: outstanding affinity token tracking

Import config directly where needed:
    from skew_protection.config import Settings, settings
"""

__version__ = "1.0.0"
