"""Decorators for tracing portal tools and resources."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire


def trace_tool(tool_name: str):
    """Decorator to trace tool execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()

                if args and isinstance(args[0], dict):
                    _add_attributes(span, "input", args[0])
                _add_attributes(span, "input", kwargs)

                try:
                    result = await func(*args, **kwargs)

                    span.set_attribute("tool.success", not _is_error(result))
                    span.set_attribute(
                        "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                    )
                    return result

                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                _add_attributes(span, "param", kwargs)
                result = await func(*args, **kwargs)

                if isinstance(result, list):
                    span.set_attribute("result.item_count", len(result))
                elif isinstance(result, dict) and "count" in result:
                    span.set_attribute("result.item_count", result["count"])

                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    """Categorize tools for better organization."""
    if "donat" in tool_name:
        return "donation"
    if "issue" in tool_name or "return" in tool_name or "renew" in tool_name:
        return "circulation"
    if tool_name.endswith("_book"):
        return "catalog"
    return "general"


def _is_error(result: Any) -> bool:
    return isinstance(result, dict) and bool(result.get("isError"))


def _add_attributes(span, prefix: str, data: dict):
    """Add scalar values as span attributes."""
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
