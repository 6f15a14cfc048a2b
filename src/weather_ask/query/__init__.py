"""Intent-to-SQL compilation."""

from .compiler import QueryPlan, compile_intent, numeric_field_expr, rainfall_numeric_expr

__all__ = ["QueryPlan", "compile_intent", "numeric_field_expr", "rainfall_numeric_expr"]
