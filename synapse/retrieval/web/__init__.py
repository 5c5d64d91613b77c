"""Web retrieval subpackage.

Architectural role:
    Provides the provider-agnostic `SearchProvider` implementation used by the
    `web_search` tool and claim verification.

Security model:
    Snippets and page text are treated as untrusted and sanitized before they are
    returned to prompt-construction layers.
"""
