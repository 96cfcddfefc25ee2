# tests/__init__.py

"""
AST-LIS FastAPI 애플리케이션의 테스트 스위트 패키지입니다.

- `conftest.py`: HTTP 클라이언트, 사용자 주입, 테스트 DB 세션 등 공용 픽스처.
- `factories.py`: 판정 서비스에 주입하는 메모리 저장소와 테스트용 엔티티 생성 함수.
- `domains/`: 도메인(usr, ref, std, lab, doc)별 테스트 모듈.

실제 PostgreSQL이 필요한 테스트는 TEST_DATABASE_URL 환경 변수가 있을 때만 실행됩니다.
"""

__title__ = "AST-LIS API Tests"
__description__ = "Test suite for the AST-LIS FastAPI application."
__version__ = "0.1.0"
__all__ = []
