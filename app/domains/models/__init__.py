# app/domains/models/__init__.py

"""
이 파일은 모든 도메인의 SQLModel 모델들을 한 곳에서 중앙 관리하여,
다른 모듈(Alembic env.py 등)에서 쉽게 임포트할 수 있도록 하는 역할을 합니다.
SQLModel.metadata가 모든 테이블을 인식하도록 보장합니다.
"""

# usr (User, UserRole)
from app.domains.usr.models import User, UserRole

# ref (Microorganism, Drug)
from app.domains.ref.models import Microorganism, Drug

# std (BreakpointStandard, ExpertRule)
from app.domains.std.models import BreakpointStandard, ExpertRule

# lab (Sample, LabResult)
from app.domains.lab.models import Sample, LabResult

# doc (Document, DocumentAssociation)
from app.domains.doc.models import Document, DocumentAssociation


#  `from app.domains.models import *` 구문으로 임포트될 모델 목록 정의
__all__ = [
    # usr
    "User", "UserRole",
    # ref
    "Microorganism", "Drug",
    # std
    "BreakpointStandard", "ExpertRule",
    # lab
    "Sample", "LabResult",
    # doc
    "Document", "DocumentAssociation",
]
