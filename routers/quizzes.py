from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from container import Services
from deps.services import get_services
from schemas.quizzes import QuizOut, quiz_out

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


@router.get("", response_model=List[QuizOut])
def list_quizzes(
    limit: int = Query(default=50, ge=1, le=100),
    svc: Services = Depends(get_services),
):
    return [quiz_out(q) for q in svc.quizzes.list_available(limit)]


@router.get("/{quiz_id}", response_model=QuizOut)
def get_quiz_detail(quiz_id: int, svc: Services = Depends(get_services)):
    q = svc.quizzes.get(quiz_id)
    if not q:
        raise HTTPException(status_code=404, detail="quiz not found")
    return quiz_out(q)
