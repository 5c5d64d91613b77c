"""Synapse Agent API adapter package.

Architectural role:
- Defines the external interaction boundary for HTTP and CLI interfaces.
- Performs transport-level validation, session lookup, and response streaming.
- Delegates orchestration to `synapse.core.engine`.
"""
