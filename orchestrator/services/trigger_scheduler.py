"""
Time-driven workflow triggers.

Each invocation looks at the wall clock, picks the trigger rules that match
the current hour, and asks the dispatch collaborator to start the workflow
for every user with an in-progress learning intent. The scheduler keeps no
clock of its own; it expects to be invoked at most once per hour.

The trigger event id is the invocation time truncated to the hour, so a
second invocation inside the same window presents the same id (and the
same idempotency key) downstream.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.config import AppConfig, Settings
from orchestrator.core.datetime_utils import (
    isoformat_z,
    sunday_based_weekday,
    to_naive_utc,
    truncate_to_hour,
    utc_now,
)
from orchestrator.core.logging import get_logger
from orchestrator.models.learning_intent import IN_PROGRESS, LearningIntent
from orchestrator.schemas.jobs import TriggerResult, TriggerSummary
from orchestrator.services.http_dispatcher import HttpDispatcher, error_info, is_success

logger = get_logger(__name__)


@dataclass(frozen=True)
class TriggerRule:
    """Fire `workflow_key` during `hour` (UTC), optionally only on one weekday (Sunday = 0)."""

    workflow_key: str
    hour: int
    day_of_week: int | None = None

    def matches(self, now: datetime) -> bool:
        if now.hour != self.hour:
            return False
        return self.day_of_week is None or sunday_based_weekday(now) == self.day_of_week


DEFAULT_RULES: tuple[TriggerRule, ...] = (
    TriggerRule("weekly_seed_v1", hour=18, day_of_week=0),
    TriggerRule("daily_instructor_v1", hour=7),
)


def rules_from_config(config: AppConfig) -> list[TriggerRule]:
    """Build the rule table from config.yml (defaults when absent)."""
    return [
        TriggerRule(rule.workflow_key, hour=rule.hour, day_of_week=rule.day_of_week)
        for rule in config.triggers.rules
    ]


@dataclass
class WorkflowDispatchRequest:
    """What the dispatch collaborator needs to start one workflow run."""

    user_id: str
    workflow_key: str
    trigger_event_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def idempotency_key(self) -> str:
        return f"{self.trigger_event_id}-{self.workflow_key}-{self.user_id}"


@dataclass
class WorkflowDispatchOutcome:
    success: bool
    result: Any = None
    error: str | None = None


class UserEligibility(Protocol):
    """Source of users currently eligible for time-driven workflows."""

    async def in_progress_user_ids(self) -> list[str]:
        ...


class WorkflowDispatcher(Protocol):
    """Collaborator that expands a workflow into job rows."""

    async def dispatch(self, request: WorkflowDispatchRequest) -> WorkflowDispatchOutcome:
        ...


class LearningIntentEligibility:
    """Users with at least one in-progress learning intent."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def in_progress_user_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LearningIntent.user_id)
                .where(
                    LearningIntent.status == IN_PROGRESS,
                    LearningIntent.user_id.is_not(None),
                )
                .distinct()
            )
            return [user_id for user_id in result.scalars().all() if user_id]


class HttpWorkflowDispatcher:
    """Calls the workflow dispatch endpoint over HTTP."""

    def __init__(self, settings: Settings, http: HttpDispatcher | None = None) -> None:
        self._url = settings.dispatch_url
        self._http = http or HttpDispatcher(
            settings, base_url=settings.dispatch_url, credential=settings.dispatch_service_key
        )

    async def dispatch(self, request: WorkflowDispatchRequest) -> WorkflowDispatchOutcome:
        response = await self._http.post(
            self._url,
            body={
                "user_id": request.user_id,
                "workflow_key": request.workflow_key,
                "trigger_event_id": request.trigger_event_id,
                "payload": request.payload,
            },
            idempotency_key=request.idempotency_key,
        )
        if is_success(response):
            return WorkflowDispatchOutcome(success=True, result=response.body)
        return WorkflowDispatchOutcome(
            success=False, result=response.body, error=error_info(response)
        )


def _dedupe(user_ids: list[str]) -> list[str]:
    return list(dict.fromkeys(user_ids))


class TriggerScheduler:
    """Fans matching workflows out to eligible users."""

    def __init__(
        self,
        eligibility: UserEligibility,
        dispatcher: WorkflowDispatcher,
        rules: list[TriggerRule] | tuple[TriggerRule, ...] = DEFAULT_RULES,
    ) -> None:
        self._eligibility = eligibility
        self._dispatcher = dispatcher
        self._rules = tuple(rules)

    def matching_rules(self, now: datetime) -> list[TriggerRule]:
        return [rule for rule in self._rules if rule.matches(now)]

    async def run(self, now: datetime | None = None) -> TriggerSummary:
        """
        Evaluate the rule table at `now` and dispatch matching workflows.

        Returns:
            TriggerSummary with one result per (workflow, user) dispatch
        """
        now = to_naive_utc(now) if now else utc_now()
        trigger_event_id = f"cron_{isoformat_z(truncate_to_hour(now))}"

        batches: list[tuple[str, list[str]]] = []
        for rule in self.matching_rules(now):
            user_ids = _dedupe(await self._eligibility.in_progress_user_ids())
            if user_ids:
                batches.append((rule.workflow_key, user_ids))
            else:
                logger.bind(workflow=rule.workflow_key).debug("trigger_no_eligible_users")

        results: list[TriggerResult] = []
        for workflow_key, user_ids in batches:
            for user_id in user_ids:
                request = WorkflowDispatchRequest(
                    user_id=user_id,
                    workflow_key=workflow_key,
                    trigger_event_id=trigger_event_id,
                    payload={"triggered_by": "cron", "timestamp": isoformat_z(now)},
                )
                results.append(await self._dispatch_one(request))

        summary = TriggerSummary(
            timestamp=isoformat_z(now),
            workflows_triggered=len(batches),
            total_users=sum(len(user_ids) for _, user_ids in batches),
            results=results,
        )
        logger.bind(
            trigger_event_id=trigger_event_id,
            workflows=[key for key, _ in batches],
            total_users=summary.total_users,
            failures=sum(1 for r in results if not r.success),
        ).info("trigger_run_completed")
        return summary

    async def _dispatch_one(self, request: WorkflowDispatchRequest) -> TriggerResult:
        try:
            outcome = await self._dispatcher.dispatch(request)
        except Exception as e:  # noqa: BLE001
            error = str(e) or type(e).__name__
            logger.bind(
                workflow=request.workflow_key, user_id=request.user_id, error=error
            ).error("workflow_dispatch_failed")
            return TriggerResult(
                workflow=request.workflow_key,
                user_id=request.user_id,
                success=False,
                error=error,
            )

        if outcome.success:
            logger.bind(workflow=request.workflow_key, user_id=request.user_id).info(
                "workflow_dispatched"
            )
        else:
            logger.bind(
                workflow=request.workflow_key, user_id=request.user_id, error=outcome.error
            ).warning("workflow_dispatch_rejected")

        return TriggerResult(
            workflow=request.workflow_key,
            user_id=request.user_id,
            success=outcome.success,
            result=outcome.result,
            error=outcome.error,
        )
