# ecobin/utils/responses.py
from __future__ import annotations

from typing import Iterable

from flask import jsonify

from ecobin.services.transitions import TransitionResult


def ok(result: TransitionResult, status: int = 200):
    return jsonify(result.to_response()), status


def ok_list(rows: Iterable, message: str = "OK"):
    items = [r.to_dict() for r in rows]
    return jsonify({
        "success": True,
        "message": message,
        "count": len(items),
        "data": items,
        "warnings": [],
    })
