"""
Athletes API routes：登记或查询计算指标所用的运动员档案。
"""

from fastapi import APIRouter, Depends, HTTPException

from ..athletes.profile import AthleteProfile, StaticProfileProvider
from .container import RecorderContainer, get_container

router = APIRouter(prefix="/athletes", tags=["运动员"])


@router.put("/{athlete_id}/profile", response_model=AthleteProfile)
def put_profile(
    athlete_id: str,
    body: AthleteProfile,
    container: RecorderContainer = Depends(get_container),
) -> AthleteProfile:
    if body.id != athlete_id:
        raise HTTPException(status_code=422, detail="路径中的 athlete_id 与档案 id 不一致")
    if not isinstance(container.profiles, StaticProfileProvider):
        raise HTTPException(status_code=405, detail="当前档案来源为只读")
    container.profiles.register(body)
    return body


@router.get("/{athlete_id}/profile", response_model=AthleteProfile)
def get_profile(
    athlete_id: str,
    container: RecorderContainer = Depends(get_container),
) -> AthleteProfile:
    profile = container.profiles.get_profile(athlete_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="运动员档案不存在")
    return profile
