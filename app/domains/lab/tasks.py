# app/domains/lab/tasks.py

import logging
from typing import Any, Dict, Optional

from app.core.database import get_async_session_context
from app.domains.lab.services import LabResultValidationService

logger = logging.getLogger(__name__)


async def revalidate_lab_results_task(
    ctx: Dict[str, Any],  # ARQ context
    microorganism_id: Optional[int] = None,
    drug_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    판정 기준 또는 전문가 규칙이 변경되었을 때,
    해당 미생물/항균제 조합의 미확정(PENDING, REQUIRES_REVIEW) 검사 결과를 다시 판정하는 백그라운드 작업.
    microorganism_id / drug_id가 None이면 전체 미생물 / 전체 항균제가 대상입니다.
    """
    logger.info(
        "백그라운드 작업 시작: 미확정 검사 결과 재판정 (microorganism=%s, drug=%s)",
        microorganism_id, drug_id,
    )
    async with get_async_session_context() as db:
        service = LabResultValidationService(db)
        updated_count = await service.revalidate_pair(microorganism_id, drug_id)

    logger.info("작업 완료! 총 %d개의 검사 결과가 재판정됨.", updated_count)
    return {"status": "ok", "updated_count": updated_count}
