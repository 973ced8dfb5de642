# elections/operations/health_monitor.py
# Liveness/Readiness health checks (database, election scheduler)

from typing import Dict

from sqlalchemy import text

from elections import app, db, limiter
from elections.operations.scheduler import election_scheduler
from elections.responses import success_response, error_response


def _check_db() -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True, "detail": "database reachable", "dialect": db.engine.dialect.name}
    except Exception as e:
        db.session.rollback()
        return {"ok": False, "error": str(e)}


def _check_scheduler() -> Dict:
    metrics = election_scheduler.get_metrics()
    enabled = app.config['ELECTION_SCHEDULER_ENABLED']
    # A disabled scheduler is healthy by definition; an enabled one must be alive
    metrics["ok"] = metrics["running"] or not enabled
    metrics["enabled"] = enabled
    return metrics


def check_health() -> Dict:
    """Aggregate overall system health."""
    database = _check_db()
    scheduler = _check_scheduler()
    overall = database["ok"] and scheduler["ok"]
    return {"db": database, "scheduler": scheduler, "overall_ok": overall}


@app.get("/health")
@limiter.exempt
def liveness():
    res = check_health()
    if res["overall_ok"]:
        return success_response(200, "Healthy", res)
    return error_response(503, "Unhealthy")


@app.get("/ready")
@limiter.exempt
def readiness():
    database = _check_db()
    if database["ok"]:
        return success_response(200, "Ready", {"db": database})
    return error_response(503, "Database unavailable")
