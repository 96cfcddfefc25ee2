# app/domains/lab/__init__.py

"""
FastAPI 애플리케이션의 'lab' 도메인 패키지입니다.

PostgreSQL의 'lab' 스키마에 해당하는 검체(Sample)와 감수성 검사 결과(LabResult)를 관리합니다.
검사 결과의 자동 판정, 검토, 재개는 `services.py`의 LabResultValidationService가 담당하고,
기준/규칙 변경 후의 재판정은 `tasks.py`의 ARQ 작업으로 수행됩니다.
"""

__title__ = "AST-LIS Laboratory Domain"
__description__ = "Manages samples, susceptibility test results and their validation workflow."
__version__ = "0.1.0"
__all__ = []
