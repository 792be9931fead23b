"""HTTP invocation boundary: cron endpoints triggering pipeline runs."""

from __future__ import annotations

import hmac
import os
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from .errors import ConfigurationError, TriggerAuthError
from .logging_conf import configure_logging
from .orchestrator import Orchestrator, RunOptions


def check_trigger(request: Request, orchestrator: Orchestrator, env=None) -> str:
    """Return how the request was authorised, or raise ``TriggerAuthError``."""

    settings = orchestrator.global_config
    environ = os.environ if env is None else env
    secret = environ.get(settings.cron_secret_env)
    authorization = request.headers.get("authorization", "")
    if secret and authorization.startswith("Bearer "):
        if hmac.compare_digest(authorization[len("Bearer ") :], secret):
            return "bearer"
    if settings.trust_cron_header and request.headers.get(settings.cron_header_name) == "1":
        return "header"
    raise TriggerAuthError("missing or invalid cron credentials")


def create_app(orchestrator_factory: Callable[[], Orchestrator], env=None) -> FastAPI:
    app = FastAPI(title="hyperlocal", version="0.1.0")
    logger = configure_logging().bind(component="web")
    holder: dict[str, Orchestrator] = {}

    def get_orchestrator() -> Orchestrator:
        if "orchestrator" not in holder:
            holder["orchestrator"] = orchestrator_factory()
        return holder["orchestrator"]

    def authorised(request: Request, orchestrator: Orchestrator = Depends(get_orchestrator)) -> Orchestrator:
        try:
            via = check_trigger(request, orchestrator, env=env)
        except TriggerAuthError as exc:
            logger.warning("cron_unauthorised", path=request.url.path)
            raise HTTPException(status_code=401, detail="Unauthorized") from exc
        logger.info("cron_triggered", path=request.url.path, via=via)
        return orchestrator

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/cron/publish-scheduled")
    def publish_scheduled_route(orchestrator: Orchestrator = Depends(authorised)) -> dict:
        published = orchestrator.sweep()
        return {"success": True, "published": len(published), "ids": published}

    @app.get("/cron/{job_name}")
    def run_job_route(
        job_name: str,
        test: Optional[str] = Query(None, description="Process only this entity id."),
        batch: Optional[int] = Query(None, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        force: bool = Query(False),
        orchestrator: Orchestrator = Depends(authorised),
    ) -> dict:
        options = RunOptions(test_entity_id=test, batch_size=batch, limit=limit, force=force)
        try:
            summary = orchestrator.run_job(job_name, options)
        except FileNotFoundError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown job: {job_name}") from exc
        except ConfigurationError as exc:
            raise HTTPException(
                status_code=500, detail={"error": str(exc), "missing": exc.missing}
            ) from exc
        return summary.as_dict()

    return app


__all__ = ["check_trigger", "create_app"]
