"""QML-facing application facade and state objects.

This package implements the QML↔Python boundary:
- Single command entry: backend.dispatch(cmd, payload)
- UI binding via state QObjects (backend.store / backend.crop)
- Python→QML notifications via backend.event
"""
