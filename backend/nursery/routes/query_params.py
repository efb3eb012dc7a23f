# Overview: Query-string helpers shared by list endpoints.

from flask import request


def optional_bool(name: str) -> bool | None:
    """?name=true / ?name=false, None when absent."""
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return value.lower() == "true"


def flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


def sort_args(default: str = "name") -> tuple[str, str]:
    sort_by = request.args.get("sort_by", default)
    sort_order = "desc" if request.args.get("sort_order", "asc").lower() == "desc" else "asc"
    return sort_by, sort_order
