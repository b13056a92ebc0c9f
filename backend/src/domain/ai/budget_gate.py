"""
Budget Gate - Enforce per-job LLM cost ceilings.

Prevents cost overruns by blocking LLM calls once a job's recorded spend
reaches its ceiling. Items left over are picked up by a later run.
"""

from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config import get_settings
from models.ai_call_log import AICallLog


class BudgetGateError(Exception):
    """Raised when budget gate blocks an LLM call"""
    pass


class BudgetGate:
    """
    Budget gate service for enforcing per-job LLM spending limits.

    - Check the job's spend before each LLM call
    - Block once spend >= ceiling
    - Ceiling = 0 means unlimited
    - Job config {"ai_cost_ceiling_micros": n} overrides AI_JOB_COST_CEILING_MICROS
    """

    @staticmethod
    def check_budget_gate(
        db: Session,
        job_id: Optional[UUID],
        job_config: Optional[dict] = None,
        project_id: Optional[UUID] = None,
    ) -> Tuple[bool, int, int]:
        """
        Check if a job has remaining budget for LLM calls.

        Args:
            db: Database session
            job_id: Job whose spend is checked (None: ad-hoc run, checked by project)
            job_config: Job config JSON (may contain ai_cost_ceiling_micros)
            project_id: Project for ad-hoc runs outside a job

        Returns:
            Tuple of (allowed: bool, current_usage_micros: int, budget_micros: int)
        """
        budget_micros = BudgetGate._get_ceiling(job_config)

        # If budget is 0, unlimited
        if budget_micros == 0:
            return True, 0, 0

        if job_id is not None:
            condition = AICallLog.job_id == job_id
        elif project_id is not None:
            condition = (AICallLog.project_id == project_id) & AICallLog.job_id.is_(None)
        else:
            return True, 0, budget_micros

        usage_micros = db.execute(
            select(func.coalesce(func.sum(AICallLog.cost_micros), 0)).where(condition)
        ).scalar_one()

        allowed = usage_micros < budget_micros

        return allowed, int(usage_micros), budget_micros

    @staticmethod
    def enforce_budget_gate(
        db: Session,
        job_id: Optional[UUID],
        job_config: Optional[dict] = None,
        project_id: Optional[UUID] = None,
    ) -> None:
        """
        Enforce budget gate - raise exception if budget exceeded.

        Raises:
            BudgetGateError: If the cost ceiling is reached
        """
        allowed, usage_micros, budget_micros = BudgetGate.check_budget_gate(
            db, job_id, job_config, project_id
        )

        if not allowed:
            raise BudgetGateError(
                f"LLM cost ceiling reached: ${usage_micros / 1_000_000:.4f} "
                f"/ ${budget_micros / 1_000_000:.4f}"
            )

    @staticmethod
    def _get_ceiling(job_config: Optional[dict]) -> int:
        """
        Resolve the ceiling in micro-USD (0 = unlimited).
        """
        default = get_settings().AI_JOB_COST_CEILING_MICROS
        if not job_config:
            return default
        try:
            ceiling = job_config.get("ai_cost_ceiling_micros", default)
            return int(ceiling) if ceiling is not None else default
        except (TypeError, ValueError):
            return default
