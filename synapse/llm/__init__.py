"""LLM access package.

Architectural role:
    Provides provider configuration, request-payload construction, and transport
    adapters used by the engine and pipelines to invoke text-generation backends.

Module split:
    - `provider_config`: environment-driven provider and model configuration.
    - `service`: text-generation port (`LLMTextGenerator`) and structured parsing.
    - `client`: provider-specific HTTP transport and response parsing.
"""
