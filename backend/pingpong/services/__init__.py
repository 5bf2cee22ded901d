"""
Engine Services

Tournament engine logic that:
- Accepts domain inputs (IDs, sessions, notifier)
- Returns domain outputs (models, small result dataclasses)
- Does NOT depend on HTTP request/response objects
- Raises pingpong.services.errors.EngineError subclasses on rejection
"""
