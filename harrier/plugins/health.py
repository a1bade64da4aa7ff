"""
Health plugin - /health, /ready and /live endpoints.

Checks are named callables (sync or async) returning a mapping with a
"status" of "healthy", "degraded" or "unhealthy", or a plain bool. A
check that raises counts as unhealthy. /ready runs only the checks whose
name mentions database, cache or ready.
"""

from __future__ import annotations

import inspect
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, Tuple, Union

from ..controller.base import RequestCtx
from ..controller.metadata import RouteDocs
from ..response import Json
from .base import Plugin

if TYPE_CHECKING:
    from ..app import Application

HealthCheck = Callable[[], Any]

READINESS_MARKERS = ("database", "cache", "ready")


def _check_name(check: HealthCheck) -> str:
    return getattr(check, "check_name", None) or getattr(check, "__name__", None) or "unknown"


def _normalize(result: Any) -> Dict[str, Any]:
    if isinstance(result, bool):
        return {"status": "healthy" if result else "unhealthy"}
    if isinstance(result, Mapping):
        normalized = dict(result)
        normalized.setdefault("status", "healthy")
        return normalized
    return {"status": "healthy"}


class HealthPlugin(Plugin):
    """
    Args:
        checks: Named checks, as a mapping or as callables (named after
            their ``check_name`` attribute or ``__name__``)
        path: Full health report
        ready_path: Readiness report
        live_path: Liveness ping
        clock: Time source for uptime
    """

    name = "health"
    version = "1.0.0"

    def __init__(
        self,
        checks: Union[Mapping[str, HealthCheck], Iterable[HealthCheck], None] = None,
        *,
        path: str = "/health",
        ready_path: str = "/ready",
        live_path: str = "/live",
        clock: Callable[[], float] = time.monotonic,
    ):
        if checks is None:
            self.checks: Dict[str, HealthCheck] = {}
        elif isinstance(checks, Mapping):
            self.checks = dict(checks)
        else:
            self.checks = {_check_name(check): check for check in checks}
        self.path = path
        self.ready_path = ready_path
        self.live_path = live_path
        self._clock = clock
        self._started_at = clock()

    def add_check(self, name: str, check: HealthCheck) -> None:
        self.checks[name] = check

    def install(self, app: "Application") -> None:
        self._started_at = self._clock()
        app.get(self.path, self.health, docs=_docs("Health check", "Runs every registered check"), name="health")
        app.get(self.ready_path, self.ready, docs=_docs("Readiness check", "Runs database, cache and readiness checks"), name="ready")
        app.get(self.live_path, self.live, docs=_docs("Liveness check", "Reports that the process is serving"), name="live")
        app.logger.info(f"Health endpoints registered: {self.path}, {self.ready_path}, {self.live_path}")

    # ========================================================================
    # Handlers
    # ========================================================================

    async def health(self, ctx: RequestCtx) -> Json:
        healthy, results = await self.run_checks(self.checks)
        body = self._report("healthy" if healthy else "unhealthy", results)
        return Json(body, 200 if healthy else 503)

    async def ready(self, ctx: RequestCtx) -> Json:
        critical = {
            name: check for name, check in self.checks.items()
            if any(marker in name for marker in READINESS_MARKERS)
        }
        ready, results = await self.run_checks(critical)
        body = self._report("ready" if ready else "not_ready", results)
        return Json(body, 200 if ready else 503)

    async def live(self, ctx: RequestCtx) -> Json:
        return Json(self._report("alive", {}))

    async def run_checks(self, checks: Mapping[str, HealthCheck]) -> Tuple[bool, Dict[str, Any]]:
        ok = True
        results: Dict[str, Any] = {}
        for name, check in checks.items():
            try:
                outcome = check()
                if inspect.isawaitable(outcome):
                    outcome = await outcome
                result = _normalize(outcome)
            except Exception as exc:
                result = {"status": "unhealthy", "message": str(exc) or type(exc).__name__}
            if result["status"] == "unhealthy":
                ok = False
            results[name] = result
        return ok, results

    def _report(self, status: str, results: Dict[str, Any]) -> Dict[str, Any]:
        report: Dict[str, Any] = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(self._clock() - self._started_at, 3),
        }
        if results:
            report["checks"] = results
        return report


def _docs(summary: str, description: str) -> RouteDocs:
    return RouteDocs(summary=summary, description=description, tags=("Health",))
