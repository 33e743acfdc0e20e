from __future__ import annotations

from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.errors import PyMongoError

from ..matching.compatibility import compatible_donor_groups
from ..matching.engine import MatchingEngine
from ..matching.errors import RequestNotFoundError
from ..models.matching import BloodGroup, DonorMatch, ExpandSearchPayload, MatchingMetrics
from ..models.user import UserPublic
from ..routers.auth import get_current_user, require_roles
from ..utils.logging import log_db_error

router = APIRouter(prefix="/matching", tags=["matching"])
CoordinatorUser = Annotated[UserPublic, Depends(require_roles("admin", "volunteer"))]
AdminUser = Annotated[UserPublic, Depends(require_roles("admin"))]


def get_engine() -> MatchingEngine:
    return router.engine


Engine = Annotated[MatchingEngine, Depends(get_engine)]


@router.get("/compatibility/{blood_group}", response_model=List[BloodGroup])
async def donor_groups_for(
    blood_group: BloodGroup,
    _: UserPublic = Depends(get_current_user),
) -> List[BloodGroup]:
    return sorted(compatible_donor_groups(blood_group), key=lambda group: group.value)


@router.post("/requests/{request_id}/match", response_model=List[DonorMatch], response_model_by_alias=True)
async def match_request(_: CoordinatorUser, request_id: str, engine: Engine) -> List[DonorMatch]:
    try:
        return await engine.match_request(request_id)
    except RequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PyMongoError as exc:
        log_db_error("match_request", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Matching unavailable. Try again when database is available.",
        ) from exc


@router.post("/requests/{request_id}/expand", response_model=List[DonorMatch], response_model_by_alias=True)
async def expand_search(
    _: CoordinatorUser,
    request_id: str,
    payload: ExpandSearchPayload,
    engine: Engine,
) -> List[DonorMatch]:
    try:
        return await engine.expand_search(request_id, payload.radius_km)
    except RequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PyMongoError as exc:
        log_db_error("expand_search", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Matching unavailable. Try again when database is available.",
        ) from exc


@router.get("/metrics", response_model=MatchingMetrics)
async def matching_metrics(_: AdminUser, engine: Engine) -> MatchingMetrics:
    try:
        return await engine.get_matching_metrics()
    except PyMongoError as exc:
        log_db_error("matching_metrics", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Metrics unavailable. Try again when database is available.",
        ) from exc


def init_router(engine: MatchingEngine) -> None:
    router.engine = engine
