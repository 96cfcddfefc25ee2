# app/core/exceptions.py

"""
애플리케이션 전반에서 사용하는 도메인 예외 클래스를 정의하는 모듈입니다.

- 판정 엔진, 전문가 규칙 평가기, 결과 검증 워크플로우는 HTTP 계층을 알지 못하므로
  `HTTPException` 대신 이 모듈의 예외를 발생시킵니다.
- `app/main.py`에 등록된 예외 핸들러가 각 예외를 `status_code`에 맞는 JSON 응답으로 변환합니다.
"""

from typing import Any, Dict, Optional

from fastapi import status


class LisError(Exception):
    """모든 도메인 예외의 기본 클래스"""

    code = "LIS_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """API 응답 본문으로 사용할 딕셔너리를 반환합니다."""
        return {
            "detail": self.message,
            "code": self.code,
            "details": self.details,
        }


class NotFoundError(LisError):
    """요청한 엔티티 또는 적용 가능한 기준표가 존재하지 않을 때 발생"""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidInputError(LisError):
    """숫자가 아닌 측정값, 판정 불가능한 시험 방법, 잘못된 규칙 조건식 등"""

    code = "INVALID_INPUT"
    status_code = status.HTTP_400_BAD_REQUEST


class IllegalTransitionError(LisError):
    """현재 검증 상태에서 허용되지 않는 상태 전이"""

    code = "ILLEGAL_TRANSITION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, attempted: str, details: Optional[Dict[str, Any]] = None):
        self.current = current
        self.attempted = attempted
        message = f"Cannot {attempted} a result in status '{current}'"
        super().__init__(message, details={"current_status": current, "attempted": attempted, **(details or {})})


class RuleEvaluationError(LisError):
    """
    전문가 규칙 하나의 평가 실패.
    규칙 평가기 내부에서만 사용되며, 다른 규칙의 평가를 중단시키지 않습니다.
    """

    code = "EVALUATION_FAILURE"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
