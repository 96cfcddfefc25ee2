# app/domains/doc/__init__.py

"""
FastAPI 애플리케이션의 'doc' 도메인 패키지입니다.

PostgreSQL의 'doc' 스키마에 해당하는 참고 문서(CLSI 표준, 논문, 지침 등)와
문서-엔티티 연결 정보를 관리합니다. 파일은 설정의 UPLOAD_DIR 아래에 저장됩니다.
"""

__title__ = "AST-LIS Document Domain"
__description__ = "Manages reference documents and their links to reference data."
__version__ = "0.1.0"
__all__ = []
