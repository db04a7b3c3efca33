"""
Release Quality Hub
Blueprint registry and shared request helpers.
"""

from flask import request


def paginate_items(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-loaded list.

    Query params:
        limit  — max items (default 200, clamped to 0..max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 0), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def json_body() -> dict | None:
    """Request JSON object, or None when the body is missing or not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {} if not request.data else None
    return data if isinstance(data, dict) else None


def ai_rate_limit():
    """Per-app limit string for AI-backed and scoring endpoints."""
    from flask import current_app

    return current_app.config.get("AI_RATE_LIMIT", "30 per minute")
