"""
Health and readiness endpoints for the grocery services.

Liveness is a constant answer; readiness checks the database the service
writes to, local disk and memory headroom, plus any gauges the service
registers (the orders service reports its live realtime connections).
"""

import logging
import os
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import psutil
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

Gauge = Callable[[], float]


class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _check(status_val: HealthStatus, component_type: str, **fields: Any) -> Dict[str, Any]:
    return {"status": status_val.value, "componentType": component_type, **fields, "time": _now()}


def _headroom(observed: float, unit: str, fail_below: float, warn_below: float) -> Dict[str, Any]:
    if observed < fail_below:
        status_val = HealthStatus.FAIL
    elif observed < warn_below:
        status_val = HealthStatus.WARN
    else:
        status_val = HealthStatus.PASS
    return _check(status_val, "system", observedValue=f"{observed:.2f}", observedUnit=unit)


class ServiceHealth:
    """Builds the health router for one service bound to one database engine.

    ``gauges`` are reported by readiness as passing checks with their current
    value; a gauge that raises turns into a warning.
    """

    def __init__(self, service_name: str, engine: Engine, version: str = "1.0.0",
                 gauges: Optional[Dict[str, Gauge]] = None):
        self.service_name = service_name
        self.engine = engine
        self.version = version
        self.gauges = gauges or {}
        self.start_time = time.time()
        self.checks_performed = 0

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now()
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        # Sync so the database check runs in the threadpool
        @router.get("/health/ready")
        def readiness() -> JSONResponse:
            checks = self.perform_readiness_checks()
            overall = self.calculate_overall_status(checks)
            code = status.HTTP_503_SERVICE_UNAVAILABLE if overall == HealthStatus.FAIL else status.HTTP_200_OK
            return JSONResponse(status_code=code, content={
                "status": overall.value,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": _now()
            })

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            return {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": round(time.time() - self.start_time, 3),
                "checks_performed": self.checks_performed,
                "gauges": {name: value for name, value in self._read_gauges().items() if value is not None},
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "num_threads": process.num_threads()
                }
            }

        return router

    def perform_readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        checks = {
            "database:connectivity": self._check_database(),
            "storage:disk_space": self._check_disk_space(),
            "system:memory": self._check_memory(),
        }
        for name, value in self._read_gauges().items():
            if value is None:
                checks[name] = _check(HealthStatus.WARN, "component", output="gauge unavailable")
            else:
                checks[name] = _check(HealthStatus.PASS, "component", observedValue=value)
        return checks

    def _read_gauges(self) -> Dict[str, Optional[float]]:
        values = {}
        for name, gauge in self.gauges.items():
            try:
                values[name] = gauge()
            except Exception as e:
                logger.warning(f"Health gauge {name} failed: {e}")
                values[name] = None
        return values

    def _check_database(self) -> Dict[str, Any]:
        try:
            started = time.perf_counter()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            elapsed_ms = (time.perf_counter() - started) * 1000
            return _check(HealthStatus.PASS, "datastore", observedValue=f"{elapsed_ms:.2f}", observedUnit="ms")
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return _check(HealthStatus.FAIL, "datastore", output=str(e))

    def _check_disk_space(self) -> Dict[str, Any]:
        try:
            free_gb = psutil.disk_usage('/').free / (1024 ** 3)
        except OSError as e:
            return _check(HealthStatus.WARN, "system", output=str(e))
        return _headroom(free_gb, "GB", fail_below=1, warn_below=5)

    def _check_memory(self) -> Dict[str, Any]:
        try:
            available_mb = psutil.virtual_memory().available / (1024 ** 2)
        except OSError as e:
            return _check(HealthStatus.WARN, "system", output=str(e))
        return _headroom(available_mb, "MB", fail_below=100, warn_below=500)

    @staticmethod
    def calculate_overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = {check.get("status", HealthStatus.PASS.value) for check in checks.values()}
        if HealthStatus.FAIL.value in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN.value in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
