"""
Submissions API routes

完成的记录在这里准备、编辑、上传；失败后可以直接重新提交，或 retry 重置。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..submission.state_machine import SubmissionStateMachine
from .container import RecorderContainer, get_container, raise_http
from .schemas import SubmissionStatusResponse, SubmissionUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["提交"])


def _status(machine: SubmissionStateMachine) -> SubmissionStatusResponse:
    snapshot = machine.snapshot()
    payload = machine.payload
    return SubmissionStatusResponse(
        **snapshot.model_dump(),
        activity=payload.record.to_payload() if payload else None,
        streams=[s.metric for s in payload.streams] if payload else None,
    )


def _known(container: RecorderContainer, session_id: str) -> SubmissionStateMachine:
    if session_id not in container.submissions and container.store.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail=f"本地记录不存在: {session_id}")
    return container.submission_for(session_id)


@router.post("/{session_id}/prepare", response_model=SubmissionStatusResponse)
def prepare_submission(
    session_id: str,
    container: RecorderContainer = Depends(get_container),
) -> SubmissionStatusResponse:
    try:
        machine = _known(container, session_id)
        machine.prepare()
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.patch("/{session_id}", response_model=SubmissionStatusResponse)
def update_submission(
    session_id: str,
    body: SubmissionUpdateRequest,
    container: RecorderContainer = Depends(get_container),
) -> SubmissionStatusResponse:
    try:
        machine = _known(container, session_id)
        machine.update(name=body.name, notes=body.notes)
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/{session_id}/submit", response_model=SubmissionStatusResponse)
def submit_submission(
    session_id: str,
    container: RecorderContainer = Depends(get_container),
) -> SubmissionStatusResponse:
    try:
        machine = _known(container, session_id)
        machine.submit()
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/{session_id}/retry", response_model=SubmissionStatusResponse)
def retry_submission(
    session_id: str,
    container: RecorderContainer = Depends(get_container),
) -> SubmissionStatusResponse:
    try:
        machine = _known(container, session_id)
        machine.retry()
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.get("/{session_id}", response_model=SubmissionStatusResponse)
def get_submission(
    session_id: str,
    container: RecorderContainer = Depends(get_container),
) -> SubmissionStatusResponse:
    try:
        return _status(_known(container, session_id))
    except Exception as e:
        raise_http(e)
