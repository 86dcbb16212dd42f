"""
목적: 공통 상수 집합을 제공한다.
설명: 설정 로더와 어댑터 기본값에서 사용하는 상수 값을 정의한다.
디자인 패턴: 상수 객체
참조: src/crossquery/shared/config/loader.py, src/crossquery/integrations/db/settings.py
"""


class SharedConst:
    """공통 상수 집합이다.

    Attributes:
        DEFAULT_ENCODING: 기본 파일 인코딩.
        ENV_NESTED_DELIMITER: 환경 변수 키를 중첩 경로로 해석하는 구분자.
        ENV_PREFIX: 어댑터 설정 환경 변수 접두사.
        HEALTH_CHECK_INTERVAL_SECONDS: 기본 헬스 체크 주기.
        DEFAULT_PAGE_SIZE: 기본 페이지 크기.
    """

    DEFAULT_ENCODING = "utf-8"
    ENV_NESTED_DELIMITER = "__"
    ENV_PREFIX = "CROSSQUERY__"
    HEALTH_CHECK_INTERVAL_SECONDS = 30.0
    DEFAULT_PAGE_SIZE = 100


__all__ = ["SharedConst"]
