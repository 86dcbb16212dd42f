"""
목적: crossquery 공통 예외 API를 제공한다.
설명: 모든 도메인 예외가 상속하는 BaseAppException과 ErrorCode, ExceptionDetail을 노출한다.
    DB 계층 예외는 crossquery.integrations.db.errors에 있다.
디자인 패턴: 퍼사드
참조: src/crossquery/shared/exceptions/models.py, src/crossquery/integrations/db/errors.py
"""

from crossquery.shared.exceptions.base import BaseAppException
from crossquery.shared.exceptions.models import ErrorCode, ExceptionDetail

__all__ = ["BaseAppException", "ErrorCode", "ExceptionDetail"]
