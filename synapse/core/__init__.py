"""Core orchestration package.

Architectural role:
    The request-orchestration layer between the API/CLI entrypoints and the
    capability adapters (intent, generation, search, parsing, extraction).

Composition:
    - `engine`: dispatch-table orchestration of one request.
    - `routing_types`: closed tool set, intent decision, file-override policy.
    - `request`: immutable request/upload models.
    - `events`: progress events, sinks, and the bounded event channel.
    - `scratchpad`: per-session state shared between tools.
    - `session`: per-session scratchpad and in-flight guard.
    - `ports`: capability protocols implemented by the adapters.

Determinism and side effects:
    Package import itself is side-effect free.
"""
