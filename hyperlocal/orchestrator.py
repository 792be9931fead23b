"""Pipeline runner and the coordinator wiring configuration, storage and jobs together."""

from __future__ import annotations

import time
import uuid
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeout
from concurrent.futures import wait
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import structlog

from .config import ConfigRepository, GlobalConfig, JobConfig
from .errors import ConfigurationError
from .engine import PublishGate, PublishOutcome, PublishResult, ThreadPoolManager
from .engine.hooks import PublishHook, run_hooks
from .engine.models import Entity, FetchResult, FetchWindow, utcnow
from .engine.relevance import FilterStats
from .engine.status import ArtifactStatus, publish_scheduled, transition
from .engine.store import BaseStore, build_store
from .jobs import ContentJob, EntityContext, build_hooks, build_job
from .logging_conf import configure_logging, job_logger
from .scheduler import APSchedulerAdapter, DueEntity, TimeWindowScheduler


@dataclass(slots=True)
class RunOptions:
    """Per-invocation overrides (CLI flags or HTTP query parameters)."""

    test_entity_id: str | None = None
    batch_size: int | None = None
    limit: int | None = None
    force: bool = False


@dataclass(slots=True)
class EntityOutcome:
    entity_id: str
    status: str = "no_content"
    created: int = 0
    already_exists: int = 0
    publish_errors: int = 0
    hook_failures: int = 0
    missing_sources: list[str] = field(default_factory=list)
    stats: FilterStats = field(default_factory=FilterStats)
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RunSummary:
    """Structured result of one run; persisted to the ``runs`` table."""

    job: str
    started_at: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    finished_at: str | None = None
    eligible: int = 0
    due: int = 0
    attempted: int = 0
    created: int = 0
    already_exists: int = 0
    no_content: int = 0
    failed: int = 0
    skipped_window: int = 0
    skipped_satisfied: int = 0
    invalid_timezone: int = 0
    covered: int = 0
    deferred: int = 0
    hook_failures: int = 0
    filtered: FilterStats = field(default_factory=FilterStats)
    errors: list[str] = field(default_factory=list)
    partial: bool = False
    stop_reason: str | None = None

    @property
    def success(self) -> bool:
        return not self.errors and self.failed == 0

    def add(self, outcome: EntityOutcome) -> None:
        self.attempted += 1
        self.created += outcome.created
        self.already_exists += outcome.already_exists
        self.hook_failures += outcome.hook_failures
        self.filtered.merge(outcome.stats)
        self.errors.extend(outcome.errors)
        if outcome.status == "failed":
            self.failed += 1
        elif outcome.status == "no_content":
            self.no_content += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "job": self.job,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "success": self.success,
            "partial": self.partial,
            "stop_reason": self.stop_reason,
            "eligible": self.eligible,
            "due": self.due,
            "attempted": self.attempted,
            "created": self.created,
            "already_exists": self.already_exists,
            "no_content": self.no_content,
            "failed": self.failed,
            "skipped_window": self.skipped_window,
            "skipped_satisfied": self.skipped_satisfied,
            "invalid_timezone": self.invalid_timezone,
            "covered": self.covered,
            "deferred": self.deferred,
            "hook_failures": self.hook_failures,
            "filtered": self.filtered.as_dict(),
            "errors": list(self.errors),
        }


class PipelineRunner:
    """Run one content job over every due entity in bounded concurrent batches."""

    def __init__(
        self,
        job: ContentJob,
        store: BaseStore,
        scheduler: TimeWindowScheduler,
        thread_pool: ThreadPoolManager,
        hooks: Sequence[PublishHook] = (),
        gate: PublishGate | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.job = job
        self.store = store
        self.scheduler = scheduler
        self.thread_pool = thread_pool
        self.hooks = list(hooks)
        self.gate = gate or PublishGate(store)
        self._clock = clock
        self._now = now
        self.logger = logger or structlog.get_logger("hyperlocal.runner").bind(job=job.name)

    # ------------------------------------------------------------------
    def run(self, options: RunOptions | None = None) -> RunSummary:
        options = options or RunOptions()
        self.job.verify_credentials()

        started = self._now()
        began = self._clock()
        summary = RunSummary(job=self.job.name, started_at=started.isoformat())
        config = self.job.config

        entities = self.load_entities()
        summary.eligible = sum(1 for entity in entities if entity.active)
        if self.job.publish_per_period:
            keys = self.scheduler.period_keys(entities, started)
            satisfied = self.gate.satisfied_period_keys(self.job.name, keys.values())
        else:
            satisfied = set()
        decision = self.scheduler.select(
            entities,
            satisfied,
            started,
            force=options.force,
            test_entity_id=options.test_entity_id,
        )
        summary.skipped_window = len(decision.skipped_window)
        summary.skipped_satisfied = len(decision.skipped_satisfied)
        summary.invalid_timezone = len(decision.invalid_timezone)

        due = self._distinct_units(decision.due, summary)
        if options.limit is not None and len(due) > options.limit:
            summary.deferred += len(due) - options.limit
            due = due[: options.limit]
        summary.due = len(due)
        self.logger.info(
            "run_started",
            eligible=summary.eligible,
            due=summary.due,
            skipped_window=summary.skipped_window,
            skipped_satisfied=summary.skipped_satisfied,
            test=options.test_entity_id,
            force=options.force,
        )

        batch_size = max(1, options.batch_size or config.batch_size)
        executor = self.thread_pool.entity_pool(self.job.name, batch_size)
        for offset in range(0, len(due), batch_size):
            elapsed = self._clock() - began
            if elapsed >= config.time_budget_seconds:
                remaining = len(due) - offset
                summary.partial = True
                summary.stop_reason = "time_budget_exhausted"
                summary.deferred += remaining
                summary.errors.append(f"Time budget exhausted after {summary.created} artifacts")
                self.logger.warning(
                    "time_budget_exhausted",
                    elapsed_seconds=round(elapsed, 1),
                    created=summary.created,
                    deferred=remaining,
                )
                break
            chunk = due[offset : offset + batch_size]
            with self.thread_pool.source_pool(self.job.name, len(chunk), len(self.job.fetchers)) as sources:
                futures = [
                    executor.submit(self.process_entity, item, entities, started, sources) for item in chunk
                ]
                wait(futures)
            for item, future in zip(chunk, futures):
                error = future.exception()
                if error is not None:
                    self.logger.error("entity_failed", entity=item.entity.id, error=str(error))
                    outcome = EntityOutcome(
                        item.entity.id, status="failed", errors=[f"{item.entity.id}: {error}"]
                    )
                else:
                    outcome = future.result()
                summary.add(outcome)

        summary.finished_at = self._now().isoformat()
        self._record_run(summary)
        self.logger.info("run_finished", **{k: v for k, v in summary.as_dict().items() if k != "errors"})
        return summary

    def load_entities(self) -> list[Entity]:
        return [Entity.from_record(row) for row in self.store.query("entities", order_by="id")]

    def _distinct_units(self, due: list[DueEntity], summary: RunSummary) -> list[DueEntity]:
        seen: set[str] = set()
        distinct: list[DueEntity] = []
        for item in due:
            key = self.job.unit_key(item.entity)
            if key in seen:
                summary.covered += 1
                continue
            seen.add(key)
            distinct.append(item)
        return distinct

    # ------------------------------------------------------------------
    def process_entity(
        self, due: DueEntity, entities: Iterable[Entity], now: datetime, sources: Executor
    ) -> EntityOutcome:
        """Fetch, compose and publish for one entity; strictly sequential stages."""

        entity = due.entity
        city = entity.city.strip().lower()
        window = self.job.fetch_window(now, due.local_date)
        ctx = EntityContext(
            entity=entity,
            local_date=due.local_date,
            period_key=due.period_key,
            window=window,
            targets=[e for e in entities if e.active and e.city.strip().lower() == city],
            is_known=self.gate.exists,
        )
        outcome = EntityOutcome(entity.id)

        results, fetch_errors = self.fetch_sources(entity, window, sources)
        outcome.errors.extend(fetch_errors)
        outcome.missing_sources = [name for name, result in results.items() if result is None]
        if results and len(fetch_errors) == len(results):
            outcome.status = "failed"
            self.logger.error("entity_sources_failed", entity=entity.id, errors=fetch_errors)
            return outcome
        if all(result is None or result.is_empty for result in results.values()):
            self.logger.info("entity_no_content", entity=entity.id, missing=outcome.missing_sources)
            return outcome

        drafts = self.job.compose(ctx, results)
        outcome.stats = ctx.stats
        outcome.already_exists += ctx.skipped_known
        for draft in drafts:
            result = self.gate.try_publish(draft)
            self._apply(outcome, result)

        if outcome.created:
            outcome.status = "created"
        elif outcome.publish_errors:
            outcome.status = "failed"
        elif outcome.already_exists:
            outcome.status = "already_exists"
        return outcome

    def _apply(self, outcome: EntityOutcome, result: PublishResult) -> None:
        if result.created:
            outcome.created += 1
            if self.hooks and result.record is not None:
                outcome.hook_failures += run_hooks(self.hooks, result.record, self.logger)
        elif result.outcome is PublishOutcome.ALREADY_EXISTS:
            outcome.already_exists += 1
        else:
            outcome.publish_errors += 1
            outcome.errors.append(f"{outcome.entity_id}: {result.error}")

    def fetch_sources(
        self, entity: Entity, window: FetchWindow, executor: Executor
    ) -> tuple[dict[str, FetchResult | None], list[str]]:
        """Run every fetcher in parallel; a slow or failing source only loses its own result.

        Returns the per-source results and one ``"<entity>: <source>: <error>"``
        line for every source that raised or ran past its timeout.
        """

        fetchers = self.job.fetchers
        started = time.monotonic()
        futures = {fetcher.name: executor.submit(fetcher.fetch, entity, window) for fetcher in fetchers}
        results: dict[str, FetchResult | None] = {}
        errors: list[str] = []
        for fetcher in fetchers:
            future = futures[fetcher.name]
            remaining = max(0.0, fetcher.timeout - (time.monotonic() - started))
            try:
                results[fetcher.name] = future.result(timeout=remaining)
            except FutureTimeout:
                future.cancel()
                self.logger.warning(
                    "source_timeout", entity=entity.id, source=fetcher.name, timeout=fetcher.timeout
                )
                results[fetcher.name] = None
                errors.append(f"{entity.id}: {fetcher.name}: timed out after {fetcher.timeout}s")
            except Exception as exc:  # noqa: BLE001
                self.logger.warning(
                    "source_error", entity=entity.id, source=fetcher.name, error=str(exc)
                )
                results[fetcher.name] = None
                errors.append(f"{entity.id}: {fetcher.name}: {exc}")
        return results, errors

    def _record_run(self, summary: RunSummary) -> None:
        try:
            self.store.insert_if_absent(
                "runs",
                {
                    "id": summary.run_id,
                    "job": summary.job,
                    "started_at": summary.started_at,
                    "finished_at": summary.finished_at,
                    "success": summary.success,
                    "partial": summary.partial,
                    "summary": summary.as_dict(),
                },
                "id",
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("run_log_failed", error=str(exc))


class Orchestrator:
    """Central coordinator managing jobs, storage and the recurring schedule."""

    def __init__(
        self,
        config_repository: ConfigRepository,
        scheduler: APSchedulerAdapter,
        thread_pool: ThreadPoolManager,
        store: BaseStore | None = None,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.scheduler = scheduler
        self.thread_pool = thread_pool
        self.store = store or build_store(
            self.global_config, project_root=config_repository.locator.project_root
        )
        self.gate = PublishGate(self.store, max_resends_per_day=self.global_config.max_resends_per_day)
        self.logger = configure_logging().bind(component="orchestrator")

    # ------------------------------------------------------------------
    def register_schedules(self, jobs: Iterable[JobConfig]) -> int:
        registered = sum(1 for job in jobs if self.scheduler.schedule_job(job, self.run_scheduled))
        self.scheduler.schedule_sweep(self.global_config.sweep_schedule, self.sweep)
        self.scheduler.start()
        return registered

    def run_scheduled(self, job_name: str) -> None:
        """APScheduler entry point; a failed run must not kill the scheduler thread."""

        try:
            self.run_job(job_name)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("scheduled_run_failed", job=job_name, error=str(exc))

    def run_job(self, job_name: str, options: RunOptions | None = None) -> RunSummary:
        job_cfg = self.config_repository.load_job(job_name)
        log = job_logger(job_cfg.job_name)
        job = build_job(job_cfg, self.global_config, logger=log)
        window = job_cfg.window
        scheduler = TimeWindowScheduler(
            window.start_hour if window else None,
            window.end_hour if window else None,
            logger=log,
        )
        outputs_dir = self.config_repository.locator.resolve(Path(self.global_config.outputs_dir))
        hooks = build_hooks(job_cfg, outputs_dir, job.credentials)
        runner = PipelineRunner(
            job, self.store, scheduler, self.thread_pool, hooks=hooks, gate=self.gate, logger=log
        )
        try:
            return runner.run(options)
        except ConfigurationError as exc:
            log.error("run_aborted", error=str(exc), missing=exc.missing)
            self._record_aborted(job_cfg.job_name, str(exc))
            raise
        finally:
            job.close()
            for hook in hooks:
                hook.close()

    def _record_aborted(self, job_name: str, error: str) -> None:
        moment = utcnow().isoformat()
        summary = RunSummary(job=job_name, started_at=moment, finished_at=moment, errors=[error])
        summary.stop_reason = "configuration_error"
        try:
            self.store.insert_if_absent(
                "runs",
                {
                    "id": summary.run_id,
                    "job": job_name,
                    "started_at": moment,
                    "finished_at": moment,
                    "success": False,
                    "partial": False,
                    "summary": summary.as_dict(),
                },
                "id",
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("run_log_failed", error=str(exc))

    # ------------------------------------------------------------------
    def sweep(self, now: datetime | None = None) -> list[str]:
        return publish_scheduled(self.store, now=now, logger=self.logger)

    def resend(self, artifact_id: str, reason: str = "") -> PublishResult:
        return self.gate.resend(artifact_id, reason=reason)

    def set_status(
        self,
        artifact_id: str,
        status: str,
        *,
        reset: bool = False,
        scheduled_for: datetime | None = None,
    ) -> dict[str, Any]:
        return transition(
            self.store, artifact_id, ArtifactStatus(status), reset=reset, scheduled_for=scheduled_for
        )

    def import_entities(self, path: Path) -> tuple[int, int]:
        """Insert new entities from an onboarding file; existing ids are updated."""

        created = updated = 0
        for item in self.config_repository.read_entities(path):
            record = Entity(
                id=item.id,
                name=item.name,
                city=item.city,
                timezone=item.timezone,
                country=item.country,
                active=item.active,
            ).to_record()
            if self.store.insert_if_absent("entities", record, "id"):
                created += 1
            else:
                self.store.update("entities", item.id, {k: v for k, v in record.items() if k != "id"})
                updated += 1
        self.logger.info("entities_imported", created=created, updated=updated)
        return created, updated

    def list_entities(self) -> list[dict[str, Any]]:
        return self.store.query("entities", order_by="id")

    def list_artifacts(
        self,
        entity_id: str | None = None,
        status: str | None = None,
        job: str | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        filters = {
            key: value
            for key, value in (("entity_id", entity_id), ("status", status), ("job", job))
            if value
        }
        return self.store.query("artifacts", filters, order_by="-created_at", limit=limit)

    def list_runs(self, job: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        filters = {"job": job} if job else {}
        return self.store.query("runs", filters, order_by="-started_at", limit=limit)

    def close(self) -> None:
        self.store.close()


__all__ = ["EntityOutcome", "Orchestrator", "PipelineRunner", "RunOptions", "RunSummary"]
