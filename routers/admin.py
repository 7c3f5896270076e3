from __future__ import annotations

from fastapi import APIRouter, Depends

from bank import reload_bank
from container import Services
from deps.auth import require_admin
from deps.services import get_services

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reload", dependencies=[Depends(require_admin)])
def reload_quizzes():
    n = reload_bank()
    return {"ok": True, "count": n}


@router.post("/sweep", dependencies=[Depends(require_admin)])
def run_sweep(svc: Services = Depends(get_services)):
    report = svc.sweeper.run_once()
    return {"ok": True, **report.model_dump()}
