"""
목적: 필터 컴파일러 공개 API를 제공한다.
설명: 컴파일러와 타입별 연산자 표를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/compiler/filter_compiler.py
"""

from crossquery.integrations.db.compiler.filter_compiler import FilterCompiler, column_map
from crossquery.integrations.db.compiler.operators import operators_for_type

__all__ = ["FilterCompiler", "column_map", "operators_for_type"]
