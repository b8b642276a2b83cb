"""
HTTP layer for tts-relay.

    - routes.py: native endpoints (/api/v1/..., /metrics)
    - openai_compat.py: OpenAI-compatible endpoints (/v1/audio/speech, /v1/models)
    - schemas.py: Pydantic request/response models
    - dependencies.py: settings and service providers
"""
