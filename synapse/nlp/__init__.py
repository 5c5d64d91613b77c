"""NLP utilities for intent routing.

Module scope:
- Tool selection for one request (`intent_router`): hard prefixes first, then
  model-backed structured classification.
"""
