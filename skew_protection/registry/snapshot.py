"""Immutable, versioned view of the registry.

The router only ever reads a ``RegistrySnapshot``. The registry builds a new
snapshot for every state transition and swaps a single reference, so a
reader holding a snapshot always sees a complete and consistent rule set.
"""

from typing import Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from skew_protection.models import Deployment, DeploymentStatus, RoutingRule


def build_rules(deployments: Sequence[Deployment]) -> Tuple[RoutingRule, ...]:
    """Derive the ordered rule set from a sequence of deployments.

    One affinity rule per routable deployment (in the given order), followed
    by the default rule pointing at the active deployment. No default rule
    is produced while nothing is active.

    Args:
        deployments: Deployments in creation order.

    Returns:
        Rules ordered by priority.
    """
    rules = []
    active: Optional[Deployment] = None
    for deployment in deployments:
        if not deployment.routable:
            continue
        if deployment.status == DeploymentStatus.ACTIVE:
            active = deployment
        rules.append(
            RoutingRule(
                priority=len(rules) + 1,
                deployment_id=deployment.identifier,
                match=deployment.identifier,
            )
        )
    if active is not None:
        rules.append(
            RoutingRule(priority=len(rules) + 1, deployment_id=active.identifier)
        )
    return tuple(rules)


class RegistrySnapshot(BaseModel):
    """A point-in-time copy of every deployment and the derived rules."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(default=0, description="Incremented on every swap")
    deployments: Tuple[Deployment, ...] = Field(default=())
    rules: Tuple[RoutingRule, ...] = Field(default=())

    @classmethod
    def build(
        cls, deployments: Sequence[Deployment], version: int
    ) -> "RegistrySnapshot":
        """Create a snapshot, ordering deployments by creation time."""
        ordered = tuple(sorted(deployments, key=lambda d: d.created_at))
        return cls(version=version, deployments=ordered, rules=build_rules(ordered))

    def get(self, identifier: str) -> Optional[Deployment]:
        for deployment in self.deployments:
            if deployment.identifier == identifier:
                return deployment
        return None

    @property
    def active(self) -> Optional[Deployment]:
        """The deployment serving unpinned traffic, if any."""
        for deployment in self.deployments:
            if deployment.status == DeploymentStatus.ACTIVE:
                return deployment
        return None

    @property
    def default_rule(self) -> Optional[RoutingRule]:
        if self.rules and self.rules[-1].is_default:
            return self.rules[-1]
        return None
