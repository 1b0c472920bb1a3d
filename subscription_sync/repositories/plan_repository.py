"""Plan repository - resolves plans by internal id or provider price id.

Loads the plan catalog from config/billing.yaml.
"""

from typing import Dict, List, Optional

from subscription_sync.config import Config
from subscription_sync.models import PlanDefinition


class PlanRepository:
    """Read-only repository of plan definitions.

    Thread-safe for read operations; the indexes are rebuilt only on reload.
    """

    def __init__(self, plans: List[PlanDefinition]):
        """Initialize plan repository.

        Args:
            plans: Plan catalog; ids and external price ids must be unique
        """
        self._plans_by_id: Dict[int, PlanDefinition] = {}
        self._plans_by_price_id: Dict[str, PlanDefinition] = {}
        self._load_plans(plans)

    @classmethod
    def from_config(cls, config: Config) -> "PlanRepository":
        return cls(config.plans)

    def _load_plans(self, plans: List[PlanDefinition]) -> None:
        """Index plans by id and by external price id."""
        by_id: Dict[int, PlanDefinition] = {}
        by_price_id: Dict[str, PlanDefinition] = {}
        for plan in plans:
            if plan.id in by_id:
                raise ValueError(f"Duplicate plan id: {plan.id}")
            if plan.external_price_id in by_price_id:
                raise ValueError(f"Duplicate external price id: {plan.external_price_id}")
            by_id[plan.id] = plan
            by_price_id[plan.external_price_id] = plan
        self._plans_by_id = by_id
        self._plans_by_price_id = by_price_id

    def find_by_id(self, plan_id: int) -> Optional[PlanDefinition]:
        """Find plan by internal id (returns None if not found)."""
        return self._plans_by_id.get(plan_id)

    def find_by_price_id(self, price_id: str) -> Optional[PlanDefinition]:
        """Find plan by provider price id (returns None if not found).

        Inactive plans still resolve so existing subscriptions keep their plan.
        """
        return self._plans_by_price_id.get(price_id)

    def get_active_plans(self) -> List[PlanDefinition]:
        """Get plans currently offered, ordered by id."""
        return sorted(
            (p for p in self._plans_by_id.values() if p.is_active),
            key=lambda p: p.id,
        )

    def get_all(self) -> List[PlanDefinition]:
        return list(self._plans_by_id.values())

    def reload(self, plans: List[PlanDefinition]) -> None:
        """Replace the catalog."""
        self._load_plans(plans)

    def __len__(self) -> int:
        return len(self._plans_by_id)

    def __contains__(self, plan_id: int) -> bool:
        return plan_id in self._plans_by_id

    def __repr__(self) -> str:
        return f"PlanRepository(plans={len(self._plans_by_id)})"
