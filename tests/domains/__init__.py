# tests/domains/__init__.py

"""
도메인별 테스트 모듈 패키지입니다.

- `test_usr_n.py`: 인증, 토큰, 역할 기반 권한.
- `test_ref_n.py`: 미생물 및 항균제 기준 정보.
- `test_std_n.py`: 판정 엔진, 기준 버전 비교, 전문가 규칙.
- `test_lab_n.py`: 검사 결과 제출, 검토, 재개, 재판정.
- `test_doc_n.py`: 참고 문서 업로드와 연결.
"""

__title__ = "AST-LIS Domain Tests"
__description__ = "Categorized tests for each business domain of AST-LIS."
__version__ = "0.1.0"
__all__ = []
