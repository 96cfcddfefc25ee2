# app/domains/std/__init__.py

"""
FastAPI 애플리케이션의 'std' 도메인 패키지입니다.

PostgreSQL의 'std' 스키마에 해당하는 판정 기준(BreakpointStandard)과
전문가 규칙(ExpertRule)을 관리하며, 이를 사용하는 판정 엔진을 포함합니다.

주요 서브모듈:
- `interpretation.py`: 측정값의 S/I/R 판정, 신뢰도 계산, 최신 기준 선택.
- `versions.py`: 발행 연도별 기준 비교 및 변경 이력.
- `rules.py`: 전문가 규칙 조건식 파서와 평가기.
- `services.py`: DB 조회와 판정 엔진을 연결하는 InterpretationService.
"""

__title__ = "AST-LIS Standards Domain"
__description__ = "Manages breakpoint standards, expert rules and the interpretation engine."
__version__ = "0.1.0"
__all__ = []
