"""
목적: 설정 모듈 공개 API를 제공한다.
설명: 설정 소스를 병합하는 로더를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/shared/config/loader.py
"""

from crossquery.shared.config.loader import ConfigLoader

__all__ = ["ConfigLoader"]
