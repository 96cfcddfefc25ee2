# app/domains/ref/routers.py

"""
'ref' 도메인 (미생물 및 항균제 기준 정보) 관련 API 엔드포인트를 정의하는 모듈입니다.
"""

from typing import List, Optional
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, HTTPException, status

from app.core import dependencies as deps
from app.domains.usr import models as usr_models

from . import crud as ref_crud
from . import schemas as ref_schemas

router = APIRouter(
    tags=["Reference Data (미생물 및 항균제 기준 정보)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 미생물 (Microorganism) 라우터
# =============================================================================
@router.post("/microorganisms", response_model=ref_schemas.MicroorganismResponse, status_code=status.HTTP_201_CREATED, summary="새 미생물 등록")
async def create_microorganism(
    microorganism_in: ref_schemas.MicroorganismCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    return await ref_crud.microorganism.create(db=db, obj_in=microorganism_in)


@router.get("/microorganisms", response_model=List[ref_schemas.MicroorganismResponse], summary="미생물 목록 조회")
async def read_microorganisms(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    organism_group: Optional[str] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    미생물 목록을 조회합니다.
    `search`가 주어지면 속/종/통용 명칭으로 부분 일치 검색합니다.
    """
    if search:
        return await ref_crud.microorganism.search(
            db, keyword=search, active_only=not include_inactive, skip=skip, limit=limit
        )
    filter_kwargs = {}
    if not include_inactive:
        filter_kwargs["is_active"] = True
    if organism_group:
        filter_kwargs["organism_group"] = organism_group
    return await ref_crud.microorganism.get_multi(db, skip=skip, limit=limit, **filter_kwargs)


@router.get("/microorganisms/{microorganism_id}", response_model=ref_schemas.MicroorganismResponse, summary="특정 미생물 조회")
async def read_microorganism(
    microorganism_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await ref_crud.microorganism.get(db=db, id=microorganism_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Microorganism not found")
    return db_obj


@router.put("/microorganisms/{microorganism_id}", response_model=ref_schemas.MicroorganismResponse, summary="미생물 정보 업데이트")
async def update_microorganism(
    microorganism_id: int,
    microorganism_in: ref_schemas.MicroorganismUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await ref_crud.microorganism.get(db=db, id=microorganism_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Microorganism not found")
    return await ref_crud.microorganism.update(db=db, db_obj=db_obj, obj_in=microorganism_in)


@router.delete("/microorganisms/{microorganism_id}", response_model=ref_schemas.MicroorganismResponse, summary="미생물 비활성화 (Soft Delete)")
async def delete_microorganism(
    microorganism_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    """기준표와 검사 결과가 참조하므로 물리적으로 삭제하지 않고 비활성화합니다."""
    db_obj = await ref_crud.microorganism.get(db=db, id=microorganism_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Microorganism not found")
    return await ref_crud.microorganism.deactivate(db=db, db_obj=db_obj)


# =============================================================================
# 2. 항균제 (Drug) 라우터
# =============================================================================
@router.post("/drugs", response_model=ref_schemas.DrugResponse, status_code=status.HTTP_201_CREATED, summary="새 항균제 등록")
async def create_drug(
    drug_in: ref_schemas.DrugCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    return await ref_crud.drug.create(db=db, obj_in=drug_in)


@router.get("/drugs", response_model=List[ref_schemas.DrugResponse], summary="항균제 목록 조회")
async def read_drugs(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    category: Optional[ref_schemas.DrugCategory] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    if search:
        return await ref_crud.drug.search(
            db, keyword=search, active_only=not include_inactive, skip=skip, limit=limit
        )
    filter_kwargs = {}
    if not include_inactive:
        filter_kwargs["is_active"] = True
    if category:
        filter_kwargs["category"] = category.value
    return await ref_crud.drug.get_multi(db, skip=skip, limit=limit, **filter_kwargs)


@router.get("/drugs/{drug_id}", response_model=ref_schemas.DrugResponse, summary="특정 항균제 조회")
async def read_drug(
    drug_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await ref_crud.drug.get(db=db, id=drug_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Drug not found")
    return db_obj


@router.put("/drugs/{drug_id}", response_model=ref_schemas.DrugResponse, summary="항균제 정보 업데이트")
async def update_drug(
    drug_id: int,
    drug_in: ref_schemas.DrugUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await ref_crud.drug.get(db=db, id=drug_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Drug not found")
    return await ref_crud.drug.update(db=db, db_obj=db_obj, obj_in=drug_in)


@router.delete("/drugs/{drug_id}", response_model=ref_schemas.DrugResponse, summary="항균제 비활성화 (Soft Delete)")
async def delete_drug(
    drug_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await ref_crud.drug.get(db=db, id=drug_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Drug not found")
    return await ref_crud.drug.deactivate(db=db, db_obj=db_obj)
