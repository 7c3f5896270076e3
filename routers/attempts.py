# quiz attempts: lifecycle endpoints

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request

from container import Services
from deps.auth import acting_user_id, current_user_id, require_client
from deps.services import get_services
from errors import ForbiddenError
from schemas.attempts import (
    ActivityRequest,
    AttemptOut,
    ProgressRequest,
    QuestionIndexRequest,
    SaveAnswerRequest,
    StartAttemptRequest,
)
from schemas.results import ResultOut

router = APIRouter(prefix="/attempts", tags=["attempts"], dependencies=[Depends(require_client)])

Svc = Annotated[Services, Depends(get_services)]
UserId = Annotated[str, Depends(current_user_id)]
Actor = Annotated[Optional[str], Depends(acting_user_id)]


def _client_ip(request: Request) -> str:
    fwd = request.headers.get("x-forwarded-for", "")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/start", response_model=AttemptOut, status_code=201)
def start_attempt(body: StartAttemptRequest, request: Request, svc: Svc, user_id: UserId):
    return svc.attempts.start_attempt(user_id, body.quiz_id, body.browser_info, _client_ip(request))


@router.post("/{attempt_id}/answer", response_model=AttemptOut)
def save_answer(attempt_id: int, body: SaveAnswerRequest, svc: Svc, actor: Actor):
    return svc.attempts.save_answer(
        attempt_id, body.question_index, body.answer, body.time_spent, user_id=actor
    )


@router.post("/{attempt_id}/skip", response_model=AttemptOut)
def skip_question(attempt_id: int, body: QuestionIndexRequest, svc: Svc, actor: Actor):
    return svc.attempts.skip_question(attempt_id, body.question_index, user_id=actor)


@router.post("/{attempt_id}/navigate", response_model=AttemptOut)
def navigate(attempt_id: int, body: QuestionIndexRequest, svc: Svc, actor: Actor):
    return svc.attempts.navigate(attempt_id, body.question_index, user_id=actor)


@router.post("/{attempt_id}/pause", response_model=AttemptOut)
def pause(attempt_id: int, svc: Svc, actor: Actor):
    return svc.attempts.pause(attempt_id, user_id=actor)


@router.post("/{attempt_id}/resume", response_model=AttemptOut)
def resume(attempt_id: int, svc: Svc, actor: Actor):
    return svc.attempts.resume(attempt_id, user_id=actor)


@router.post("/{attempt_id}/submit", response_model=AttemptOut)
def submit(attempt_id: int, svc: Svc, actor: Actor):
    return svc.attempts.submit_attempt(attempt_id, user_id=actor)


@router.post("/{attempt_id}/grade", response_model=ResultOut, status_code=201)
def grade(attempt_id: int, svc: Svc, actor: Actor):
    return svc.scoring.grade_attempt(attempt_id, user_id=actor)


@router.post("/{attempt_id}/mark-review", response_model=AttemptOut)
def mark_review(attempt_id: int, body: QuestionIndexRequest, svc: Svc, actor: Actor):
    return svc.attempts.mark_for_review(attempt_id, body.question_index, user_id=actor)


@router.post("/{attempt_id}/unmark-review", response_model=AttemptOut)
def unmark_review(attempt_id: int, body: QuestionIndexRequest, svc: Svc, actor: Actor):
    return svc.attempts.unmark_for_review(attempt_id, body.question_index, user_id=actor)


@router.post("/{attempt_id}/activity", response_model=AttemptOut)
def record_activity(attempt_id: int, body: ActivityRequest, svc: Svc, actor: Actor):
    return svc.attempts.record_suspicious_activity(
        attempt_id, body.activity_type, body.details, user_id=actor
    )


@router.put("/{attempt_id}/progress", response_model=AttemptOut)
def update_progress(attempt_id: int, body: ProgressRequest, svc: Svc, actor: Actor):
    return svc.attempts.update_progress(
        attempt_id, body.time_spent, body.remaining_time, user_id=actor
    )


@router.get("/active/{quiz_id}")
def active_attempt(quiz_id: int, svc: Svc, user_id: UserId):
    a = svc.attempts.get_active_attempt(user_id, quiz_id)
    return {"ok": True, "attempt": AttemptOut.model_validate(a).model_dump() if a else None}


@router.get("/user/{quiz_id}")
def user_attempts(quiz_id: int, svc: Svc, user_id: UserId):
    items = svc.attempts.list_attempts(user_id, quiz_id)
    # answers and the activity log can be large; leave them out of list views
    rows = [
        AttemptOut.model_validate(a).model_dump(exclude={"answers", "suspicious_activity"})
        for a in items
    ]
    return {"ok": True, "items": rows, "count": len(rows)}


@router.get("/{attempt_id}", response_model=AttemptOut)
def get_attempt(attempt_id: int, svc: Svc, actor: Actor):
    a = svc.attempts.get_attempt(attempt_id)
    if actor is not None and a.user_id != actor:
        raise ForbiddenError("You don't have permission to view this attempt")
    return AttemptOut.model_validate(a)
