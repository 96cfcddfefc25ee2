# app/domains/ref/__init__.py

"""
FastAPI 애플리케이션의 'ref' 도메인 패키지입니다.

PostgreSQL의 'ref' 스키마에 해당하는 기준 정보(미생물, 항균제)를 관리합니다.
기준표(std)와 검사 결과(lab)는 이 도메인의 엔티티를 참조만 하며 소유하지 않습니다.
"""

__title__ = "AST-LIS Reference Data Domain"
__description__ = "Manages microorganisms and antimicrobial drugs."
__version__ = "0.1.0"
__all__ = []
