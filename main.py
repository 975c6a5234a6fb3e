from __future__ import annotations

import os
import signal

from fastapi import FastAPI, HTTPException

from ncr import db
from ncr.api_models import PlanRequest, PlanResponse, ReconcileRequest, StepModel
from ncr.errors import DesiredStateError, InvalidDocument
from ncr.reconciler import Reconciler
from ncr.runtime import RuntimeState
from ncr.status import Reason

app = FastAPI(title="Node Config Reconciler")

runtime = RuntimeState()
reconciler: Reconciler | None = None
START_LOOP = os.getenv("NCR_START_LOOP", "1") != "0"


def _request_exit() -> None:
    # Graceful shutdown; the service manager restarts us with the new unit.
    os.kill(os.getpid(), signal.SIGTERM)


def get_reconciler() -> Reconciler:
    global reconciler
    if reconciler is None:
        reconciler = Reconciler.from_settings(runtime, on_cancel=_request_exit)
    return reconciler


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    r = get_reconciler()
    if START_LOOP:
        r.start()


@app.on_event("shutdown")
def shutdown() -> None:
    if reconciler is not None:
        reconciler.stop()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/status")
def status() -> dict:
    snap = get_reconciler().runtime.snapshot()
    last = db.last_cycle()
    snap["last_recorded_cycle"] = last.__dict__ if last else None
    return snap


@app.get("/cycles")
def cycles(limit: int = 20) -> list[dict]:
    return [c.__dict__ for c in db.list_cycles(limit=limit)]


@app.get("/events")
def events(limit: int = 50, target: str | None = None) -> list[dict]:
    return [e.__dict__ for e in db.list_events(limit=limit, target=target)]


@app.get("/applied")
def applied() -> dict:
    return get_reconciler().bookkeeper.load().to_dict()


@app.post("/reconcile")
def reconcile(req: ReconcileRequest) -> dict:
    r = get_reconciler()
    outcome = r.reconcile(force=req.force, reason=Reason(req.reason))
    if outcome.restart_requested and START_LOOP:
        r.stop()
        _request_exit()
    return outcome.to_dict()


@app.post("/plan", response_model=PlanResponse)
def dry_run(req: PlanRequest) -> PlanResponse:
    try:
        preview = get_reconciler().preview(req.document.encode("utf-8"))
    except (InvalidDocument, DesiredStateError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    cs = preview.changeset
    changes = {
        "files": [{"path": c.path, "change": c.kind.value} for c in cs.changed_files()],
        "units": [{"name": c.name, "change": c.kind.value} for c in cs.changed_units()],
    }
    steps = [
        StepModel(
            action=s.action.value,
            target=s.target,
            phase=int(s.phase),
            mode=f"{s.mode:04o}" if s.mode is not None else None,
        )
        for s in preview.plan.steps
    ]
    return PlanResponse(restart_requested=preview.plan.cancel, changes=changes, steps=steps)
