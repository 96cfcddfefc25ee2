# app/domains/usr/__init__.py

"""
FastAPI 애플리케이션의 'usr' 도메인 패키지입니다.

PostgreSQL의 'usr' 스키마에 해당하는 사용자 계정과 인증/권한 부여를 담당합니다.

주요 서브모듈:
- `models.py`: 'usr' 스키마의 테이블에 매핑되는 SQLModel 정의 (User, UserRole).
- `schemas.py`: 사용자 요청/응답 및 인증 토큰 스키마.
- `crud.py`: 사용자 CRUD 및 인증 로직.
- `routers.py`: 로그인, 토큰 재발급, 사용자 관리 API 엔드포인트.
"""

__title__ = "AST-LIS User Domain"
__description__ = "Manages user accounts and handles authentication."
__version__ = "0.1.0"
__all__ = []
