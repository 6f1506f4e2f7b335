"""LLM access package.

Architectural role:
    Provides the provider abstraction, per-provider request/response translation,
    incremental stream decoding and the `ChatbotClient` facade used by terminal
    and HTTP adapters.

Module split:
    - `types`: messages, configuration, results and stream events.
    - `errors`: configuration / provider / transport error taxonomy.
    - `provider_config`: endpoints, default models, environment and key files.
    - `transport`: `requests`-based HTTP execution and cancellation.
    - `decoders`: stream state machines for the three framings.
    - `adapters`: Groq, Gemini and HuggingFace request/response translation.
    - `client`: the caller-facing facade.
    - `service`: client construction from explicit or environment settings.
"""
