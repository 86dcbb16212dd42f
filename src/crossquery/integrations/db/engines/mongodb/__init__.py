"""
목적: MongoDB 엔진 공개 API를 제공한다.
설명: MongoDB 드라이버 클래스를 외부에 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/engines/mongodb/driver.py
"""

from crossquery.integrations.db.engines.mongodb.driver import MongoDriver

__all__ = ["MongoDriver"]
