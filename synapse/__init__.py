"""Synapse Agent: tool-routing orchestration over document and knowledge tasks.

Architectural role:
    Routes one user request (text plus an optional uploaded document) to a single
    tool, runs that tool through fallible external capabilities, and streams
    ordered progress events back to the caller.

Package split:
    - `core`: engine, routing types, events/channel, scratchpad, sessions, ports.
    - `nlp`: intent classification.
    - `llm`: text-generation provider configuration and transport.
    - `retrieval`: web search.
    - `extraction`: native/optical text extraction and polling.
    - `analysis`: tabular parsing, schema inference, chart building.
    - `verification`: claim verification.
    - `drafting`: offer-letter drafting.
    - `mail`: outbound email delivery.
    - `prompting`: prompt templates.
    - `api`: HTTP and CLI adapters.
"""
