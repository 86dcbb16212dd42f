"""
목적: 페이지네이션 공개 API를 제공한다.
설명: 키셋 페이지네이터와 프로세스 내 창 적용 함수를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/pagination/cursor_paginator.py
"""

from crossquery.integrations.db.pagination.cursor_paginator import CursorPaginator, Executor
from crossquery.integrations.db.pagination.window import apply_window, compare_values, window_command

__all__ = ["CursorPaginator", "Executor", "apply_window", "compare_values", "window_command"]
