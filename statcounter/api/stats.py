from __future__ import annotations

from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from ..errors import BadRequestError, DuplicateSubmissionError, NotFoundError, StatError, StorageError
from ..models.stat_daily import StatDaily
from ..services.stat_service import StatService
from ..services.summa import AggregateStore, RegionAggregate
from .deps import SessionUser, current_user, get_stat_service, get_summa, require_admin

router = APIRouter(prefix="/djin", tags=["stats"])


# -----------------------------
# Schemas (do NOT use DB model as input)
# -----------------------------

class StatFields(BaseModel):
    """
    Numeric body of a report. On POST omitted fields are stored as 0; on
    PATCH omitted fields keep their stored value. *_dif values are accepted
    but always recomputed as fact - plan. NaN and infinities are rejected.
    """
    model_config = ConfigDict(allow_inf_nan=False)

    seed_plan: Optional[float] = None
    seed_fact: Optional[float] = None
    seed_dif: Optional[float] = None

    pumpkin_plan: Optional[float] = None
    pumpkin_fact: Optional[float] = None
    pumpkin_dif: Optional[float] = None

    peanut_plan: Optional[float] = None
    peanut_fact: Optional[float] = None
    peanut_dif: Optional[float] = None

    akb1: Optional[int] = None
    akb2: Optional[int] = None
    newtt: Optional[int] = None
    mix: Optional[int] = None
    npone: Optional[int] = None
    set_shelving: Optional[int] = None
    dmp: Optional[int] = None
    top_five: Optional[int] = None
    news: Optional[int] = None


# -----------------------------
# Helpers
# -----------------------------

def _raise_http(exc: StatError) -> NoReturn:
    if isinstance(exc, BadRequestError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail="Record not found")
    if isinstance(exc, DuplicateSubmissionError):
        raise HTTPException(status_code=409, detail="Report for today already exists")
    if isinstance(exc, StorageError):
        raise HTTPException(status_code=500, detail="Database operation failed")
    raise HTTPException(status_code=500, detail="Internal server error")


def _report_out(row: StatDaily) -> Dict[str, Any]:
    out = row.model_dump(exclude={"created_at", "updated_at"})
    out["report_date"] = row.report_date.isoformat()
    return out


def _prefixed(stat: RegionAggregate, prefix: str) -> Dict[str, Any]:
    return {f"{prefix}{k}": v for k, v in stat.to_dict().items()}


# -----------------------------
# Reports
# -----------------------------

@router.post("/stat")
def post_stat(
    payload: StatFields,
    user: SessionUser = Depends(current_user),
    service: StatService = Depends(get_stat_service),
) -> Dict[str, Any]:
    try:
        saved = service.submit(user.region_id, user.username, payload.model_dump(exclude_none=True))
    except StatError as exc:
        _raise_http(exc)
    return {"status": "success", "message": "Data saved successfully", "report": _report_out(saved)}


@router.patch("/stat")
def patch_stat(
    payload: StatFields,
    user: SessionUser = Depends(current_user),
    service: StatService = Depends(get_stat_service),
) -> Dict[str, Any]:
    try:
        updated = service.correct(user.region_id, user.username, payload.model_dump(exclude_unset=True))
    except StatError as exc:
        _raise_http(exc)
    return {"status": "success", "message": "Data updated successfully", "report": _report_out(updated)}


@router.get("/stat")
def get_today_stats(
    mine: bool = Query(default=False, description="Only the caller's own report"),
    user: SessionUser = Depends(current_user),
    service: StatService = Depends(get_stat_service),
) -> List[Dict[str, Any]]:
    try:
        rows = service.reports_for_today(user.region_id, name=user.username if mine else None)
    except StatError as exc:
        _raise_http(exc)
    return [_report_out(r) for r in rows]


@router.get("/month")
def get_stats_by_date(
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD"),
    mine: bool = Query(default=False, description="Only the caller's own report"),
    user: SessionUser = Depends(current_user),
    service: StatService = Depends(get_stat_service),
) -> List[Dict[str, Any]]:
    try:
        rows = service.reports_for_date(user.region_id, date, name=user.username if mine else None)
    except StatError as exc:
        _raise_http(exc)
    return [_report_out(r) for r in rows]


# -----------------------------
# Aggregates
# -----------------------------

@router.get("/total")
def get_region_total(
    user: SessionUser = Depends(current_user),
    summa: AggregateStore = Depends(get_summa),
) -> Dict[str, Any]:
    stat, count = summa.get_for_region(user.region_id)
    return {
        "region_id": user.region_id,
        "total_reports": count,
        **_prefixed(stat, "total_"),
    }


@router.get("/regions")
def get_all_regional_stats(
    _: SessionUser = Depends(require_admin),
    summa: AggregateStore = Depends(get_summa),
) -> Dict[str, Any]:
    stats = summa.get_all()
    counts = summa.get_all_counts()
    return {
        f"region_{region_id}": {
            "region_id": region_id,
            "total_reports": counts.get(region_id, 0),
            **stat.to_dict(),
        }
        for region_id, stat in sorted(stats.items())
    }


@router.get("/summary")
def get_grand_total(
    _: SessionUser = Depends(require_admin),
    summa: AggregateStore = Depends(get_summa),
) -> Dict[str, Any]:
    stat, count = summa.get_total()
    return {"total_reports": count, **_prefixed(stat, "total_")}
