from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from container import Services
from deps.auth import current_user_id, is_admin, require_admin, require_client
from deps.services import get_services
from schemas.results import DetailedResultOut, FeedbackRequest, ResultOut, SubmitQuizRequest

router = APIRouter(prefix="/results", tags=["results"], dependencies=[Depends(require_client)])

Svc = Annotated[Services, Depends(get_services)]
UserId = Annotated[str, Depends(current_user_id)]


@router.post("/submit", response_model=ResultOut, status_code=201)
def submit_quiz(body: SubmitQuizRequest, svc: Svc, user_id: UserId):
    return svc.scoring.submit_quiz(
        user_id,
        body.quiz_id,
        body.answers,
        body.start_time,
        body.end_time,
        body.attempt_number,
        question_times=body.question_times,
    )


@router.get("/my")
def my_results(
    svc: Svc,
    user_id: UserId,
    quiz_id: Optional[int] = None,
    limit: int = Query(default=20, ge=1, le=100),
):
    items = svc.scoring.list_results(user_id, quiz_id, limit)
    rows = [ResultOut.model_validate(r).model_dump(exclude={"answers"}) for r in items]
    return {"ok": True, "items": rows, "count": len(rows)}


@router.get("/best/{quiz_id}")
def best_result(quiz_id: int, svc: Svc, user_id: UserId):
    best = svc.scoring.get_best_result(user_id, quiz_id)
    if best is None:
        return {"ok": True, "result": None}
    return {"ok": True, "result": ResultOut.model_validate(best).model_dump()}


@router.get("/quiz/{quiz_id}", dependencies=[Depends(require_admin)])
def quiz_results(
    quiz_id: int,
    svc: Svc,
    min_score: Optional[int] = Query(default=None, ge=0, le=100),
    max_score: Optional[int] = Query(default=None, ge=0, le=100),
    limit: int = Query(default=50, ge=1, le=200),
):
    items = svc.scoring.list_quiz_results(quiz_id, min_score, max_score, limit)
    rows = [ResultOut.model_validate(r).model_dump(exclude={"answers"}) for r in items]
    return {"ok": True, "items": rows, "count": len(rows)}


@router.get("/{result_id}", response_model=ResultOut)
def get_result(
    result_id: int, svc: Svc, user_id: UserId, admin: Annotated[bool, Depends(is_admin)]
):
    return svc.scoring.get_result(result_id, user_id, is_admin=admin)


@router.get("/{result_id}/detailed", response_model=DetailedResultOut)
def get_detailed_result(
    result_id: int, svc: Svc, user_id: UserId, admin: Annotated[bool, Depends(is_admin)]
):
    result, questions = svc.scoring.get_detailed_result(result_id, user_id, is_admin=admin)
    base = ResultOut.model_validate(result).model_dump(exclude={"grade", "performance_level"})
    return DetailedResultOut(**base, questions=questions)


@router.post(
    "/{result_id}/feedback", response_model=ResultOut, dependencies=[Depends(require_admin)]
)
def add_feedback(result_id: int, body: FeedbackRequest, svc: Svc, user_id: UserId):
    return svc.scoring.add_feedback(result_id, body.feedback, reviewer_id=user_id)
