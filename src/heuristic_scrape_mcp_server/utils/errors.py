from __future__ import annotations


def describe_exception(exc: BaseException, *, limit: int = 200) -> str:
    """`"ExcType: detail"` with the detail truncated to `limit` characters."""
    detail = str(exc).strip()
    if len(detail) > limit:
        detail = detail[:limit].rstrip() + "…"
    return f"{type(exc).__name__}: {detail}" if detail else type(exc).__name__
