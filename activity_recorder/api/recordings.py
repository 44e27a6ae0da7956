"""
Recordings API routes

设备端控制记录状态机：开始、暂停、继续、完成、丢弃，以及批量上报读数。
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..recording.models import RecordingState
from ..recording.plan import PlanProgress
from ..recording.state_machine import RecordingStateMachine
from .container import RecorderContainer, get_container, raise_http
from .schemas import ReadingsRequest, ReadingsResponse, RecordingStatusResponse, StartRecordingRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recordings", tags=["记录"])

_ACTIVE_STATES = (RecordingState.RECORDING, RecordingState.PAUSED)


def _status(machine: RecordingStateMachine) -> RecordingStatusResponse:
    session = machine.session
    return RecordingStatusResponse(
        state=machine.state,
        session_id=machine.session_id,
        started_at=session.started_at if session else None,
        finished_at=session.finished_at if session else None,
        stats=machine.stats(),
    )


def _current(container: RecorderContainer) -> RecordingStateMachine:
    if container.recording is None:
        raise HTTPException(status_code=404, detail="当前没有记录")
    return container.recording


@router.post("/start", response_model=RecordingStatusResponse)
def start_recording(
    body: StartRecordingRequest,
    container: RecorderContainer = Depends(get_container),
) -> RecordingStatusResponse:
    try:
        current = container.recording
        if current is not None and current.state in _ACTIVE_STATES:
            raise HTTPException(status_code=409, detail=f"已有进行中的记录: {current.session_id}")
        machine = RecordingStateMachine(
            container.store,
            body.owner_id,
            body.activity_type,
            container.permissions,
            plan=PlanProgress(body.plan_id, []) if body.plan_id else None,
        )
        machine.start()
        container.recording = machine
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/readings", response_model=ReadingsResponse)
def post_readings(
    body: ReadingsRequest,
    container: RecorderContainer = Depends(get_container),
) -> ReadingsResponse:
    try:
        machine = _current(container)
        accepted = 0
        for reading in body.readings:
            if machine.record(reading):
                accepted += 1
        return ReadingsResponse(accepted=accepted, rejected=len(body.readings) - accepted)
    except Exception as e:
        raise_http(e)


@router.post("/pause", response_model=RecordingStatusResponse)
def pause_recording(container: RecorderContainer = Depends(get_container)) -> RecordingStatusResponse:
    try:
        machine = _current(container)
        machine.pause()
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/resume", response_model=RecordingStatusResponse)
def resume_recording(container: RecorderContainer = Depends(get_container)) -> RecordingStatusResponse:
    try:
        machine = _current(container)
        machine.resume()
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/finish", response_model=RecordingStatusResponse)
def finish_recording(container: RecorderContainer = Depends(get_container)) -> RecordingStatusResponse:
    try:
        machine = _current(container)
        session = machine.finish()
        container.submission_for(session.id)
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.post("/discard", response_model=RecordingStatusResponse)
def discard_recording(container: RecorderContainer = Depends(get_container)) -> RecordingStatusResponse:
    try:
        machine = _current(container)
        machine.discard()
        if machine.session_id is not None:
            container.submissions.pop(machine.session_id, None)
        return _status(machine)
    except Exception as e:
        raise_http(e)


@router.get("/current", response_model=RecordingStatusResponse)
def get_current_recording(container: RecorderContainer = Depends(get_container)) -> RecordingStatusResponse:
    try:
        return _status(_current(container))
    except Exception as e:
        raise_http(e)
