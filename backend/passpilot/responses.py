# Overview: The single JSON envelope every route answers with.

from flask import jsonify


def ok(data=None, status: int = 200):
    """{"ok": true, "data": ...}"""
    return jsonify({"ok": True, "data": data}), status


def fail(message: str, status: int, **extra):
    """{"ok": false, "error": "..."} plus optional detail keys."""
    body = {"ok": False, "error": message}
    body.update(extra)
    return jsonify(body), status
