# app/domains/lab/schemas.py

"""
'lab' 도메인 (검체 및 검사 결과)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField

from app.domains.std.models import TestMethod

from .models import Interpretation, SamplePriority, SampleStatus, SampleType, ValidationStatus


# =============================================================================
# 1. 검체 (Sample) 스키마
# =============================================================================
class SampleBase(BaseModel):
    patient_id: str = PydanticField(max_length=50, description="환자 식별자")
    sample_type: SampleType
    collection_date: datetime
    specimen_source: str = PydanticField(max_length=255)
    clinical_info: Optional[str] = None
    requesting_physician: Optional[str] = PydanticField(None, max_length=100)
    priority: SamplePriority = SamplePriority.ROUTINE
    barcode_id: Optional[str] = PydanticField(None, max_length=50)
    comments: Optional[str] = None


class SampleCreate(SampleBase):
    received_date: Optional[datetime] = None


class SampleUpdate(BaseModel):
    sample_type: Optional[SampleType] = None
    specimen_source: Optional[str] = PydanticField(None, max_length=255)
    clinical_info: Optional[str] = None
    requesting_physician: Optional[str] = PydanticField(None, max_length=100)
    priority: Optional[SamplePriority] = None
    status: Optional[SampleStatus] = None
    comments: Optional[str] = None


class SampleStatusUpdate(BaseModel):
    status: SampleStatus


class SampleResponse(SampleBase):
    id: int
    status: SampleStatus
    received_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 2. 검사 결과 (LabResult) 스키마
# =============================================================================
class LabResultCreate(BaseModel):
    """
    검사 결과 등록 요청. 검사자는 인증된 사용자로 기록되며,
    판정/검증 상태는 등록 직후 자동 판정으로 채워집니다.
    """
    sample_id: int
    microorganism_id: int
    drug_id: int
    test_method: TestMethod
    raw_result: str = PydanticField(min_length=1, max_length=100, description="원시 측정값 (예: '18', '<=0.25')")
    test_date: Optional[datetime] = None
    instrument_id: Optional[str] = PydanticField(None, max_length=50)
    quality_control_passed: bool = True
    comments: Optional[str] = None


class LabResultUpdate(BaseModel):
    """미확정 결과의 원시 데이터 수정. 수정 후 자동으로 다시 판정합니다."""
    test_method: Optional[TestMethod] = None
    raw_result: Optional[str] = PydanticField(None, min_length=1, max_length=100)
    test_date: Optional[datetime] = None
    instrument_id: Optional[str] = PydanticField(None, max_length=50)
    quality_control_passed: Optional[bool] = None
    comments: Optional[str] = None


class LabResultReview(BaseModel):
    decision: ValidationStatus = PydanticField(description="validated, rejected 또는 requires_review")
    comments: Optional[str] = None
    interpretation_override: Optional[Interpretation] = PydanticField(
        None, description="검토자가 판정을 수동으로 변경할 경우 지정"
    )


class LabResultReopen(BaseModel):
    comments: str = PydanticField(min_length=1, description="재개 사유")


class LabResultResponse(BaseModel):
    id: int
    sample_id: int
    microorganism_id: int
    drug_id: int
    test_method: TestMethod
    raw_result: str
    interpretation: Optional[Interpretation] = None
    breakpoint_used_id: Optional[int] = None
    expert_rule_applied: List[int] = PydanticField(default_factory=list)
    validation_status: ValidationStatus
    validation_comments: Optional[str] = None
    technician_id: int
    reviewed_by_id: Optional[int] = None
    test_date: datetime
    report_date: Optional[datetime] = None
    instrument_id: Optional[str] = None
    quality_control_passed: bool
    comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QualityControlStatistics(BaseModel):
    passed: int
    failed: int
    percentage: float = PydanticField(description="정도 관리 통과율 (%)")


class LabResultStatistics(BaseModel):
    total: int
    by_method: Dict[str, int]
    by_interpretation: Dict[str, int]
    by_status: Dict[str, int]
    quality_control: QualityControlStatistics


class RevalidationResponse(BaseModel):
    microorganism_id: Optional[int] = None
    drug_id: Optional[int] = None
    revalidated: int


class BulkReviewRequest(BaseModel):
    result_ids: List[int] = PydanticField(min_length=1, description="검토할 결과 ID 목록")
    decision: ValidationStatus = PydanticField(
        ValidationStatus.VALIDATED, description="validated, rejected 또는 requires_review"
    )
    comments: Optional[str] = None


class BulkReviewResponse(BaseModel):
    successful: int
    failed: int
    errors: List[str] = PydanticField(default_factory=list, description="실패한 결과별 사유")
