# app/__init__.py

"""
AST-LIS FastAPI 애플리케이션의 메인 패키지입니다.

항균제 감수성 검사(Antimicrobial Susceptibility Testing) 결과를 관리하는
실험실 정보 시스템(LIS)의 백엔드로,
애플리케이션 진입점 (main.py)과 공통 설정/데이터베이스/보안 유틸리티를 담는 core 서브패키지,
그리고 각 비즈니스 도메인을 대표하는 domains 서브패키지로 구성됩니다.
"""

APP_NAME = "AST-LIS FastAPI API"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"  # API 라우트의 공통 접두사 (main.py에서 적용)

__version__ = APP_VERSION
__title__ = APP_NAME
__description__ = "Antimicrobial Susceptibility Testing Laboratory Information System (AST-LIS) API backend."
__all__ = []
