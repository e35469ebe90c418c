from datetime import date

from fastapi import APIRouter, Header, HTTPException, Query, Response

from recurring_scheduler.errors import RuleListError, RunInProgressError
from recurring_scheduler.services.invocation_gate import (
    extract_presented_secret,
    is_authorized,
)
from recurring_scheduler.worker import run_recurring_job

router = APIRouter()

NO_STORE = {"Cache-Control": "no-store"}


@router.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


def _require_cron_secret(x_cron_secret: str | None, authorization: str | None) -> None:
    presented = extract_presented_secret(x_cron_secret, authorization)
    if not is_authorized(presented):
        raise HTTPException(status_code=401, detail="Unauthorized.", headers=NO_STORE)


@router.api_route("/api/cron/recurring", methods=["GET", "POST"])
def run_recurring(
    response: Response,
    reference_date: date | None = Query(default=None),
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> dict:
    _require_cron_secret(x_cron_secret, authorization)

    try:
        result = run_recurring_job(reference_date)
    except RunInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc), headers=NO_STORE) from exc
    except RuleListError as exc:
        raise HTTPException(
            status_code=500, detail="Failed to load recurring rules", headers=NO_STORE
        ) from exc

    response.headers.update(NO_STORE)
    payload = result.to_dict()
    if (
        result.rules_considered == 0
        and result.rules_outside_window == 0
        and not result.invalid_rules
    ):
        payload["message"] = "No recurring rules due at this time"
    return payload
