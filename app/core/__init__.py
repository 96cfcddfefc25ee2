# app/core/__init__.py

"""
FastAPI 애플리케이션의 핵심 구성 요소 패키지입니다.

주요 서브모듈:

- `config.py`: 애플리케이션의 설정 및 환경 변수 관리 (Pydantic Settings).
- `database.py`: 데이터베이스 연결, 세션 관리 (SQLModel 및 AsyncSQLAlchemy).
- `crud_base.py`: 모든 도메인 CRUD 클래스가 상속하는 제네릭 비동기 CRUD.
- `security.py`: 사용자 인증, 역할 기반 권한 부여, 비밀번호 해싱.
- `dependencies.py`: FastAPI 의존성 주입에서 사용될 공통 의존성 함수들.
- `exceptions.py`: 판정 엔진과 검증 워크플로우의 도메인 예외.
- `tasks.py`: 공통 ARQ 백그라운드 태스크.
"""

__title__ = "AST-LIS Core"
__description__ = "Core components for the AST-LIS FastAPI application."
__version__ = "0.1.0"
__all__ = []
