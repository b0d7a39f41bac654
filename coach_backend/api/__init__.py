"""
API Package — FastAPI Router • Models • JWT Utils • Prompting • Inference
=========================================================================

Mission
-------
This package defines the backend's HTTP interface and the outbound side of a
conversation turn: assembling a bounded prompt from the stored history and
delegating the reply to the external LLM endpoint.

Contents
--------
- fast_api
    FastAPI router with endpoints for:
      • Conversations: create, list, rename, delete
      • Turns: submit (202 + background inference), poll the pending reply
      • Messages: newest-first paged listing, starring
      • Health: liveness and entity-store availability

- models
    Pydantic data contracts for request/response validation:
      • ConversationCreationDetails, UpdateConversationDetails, NewTurn, StarDetails
      • ConversationDetails, MessageDetails, MessagePageDetails, TurnAccepted

- utils
    JWT helpers:
      • verify_token(token) — validates JWTs and extracts the caller identity
      • bearer_token(header) — reads ``Authorization: Bearer`` headers

- knowledge
    The career-coach preamble placed at the top of every prompt.

- prompt_builder
    Newest-first history selection under a character or token budget.

- inference_gateway
    LangChain `ChatOpenAI` calls with per-attempt timeout, bounded retries
    and typed failures.

Operational Notes
-----------------
- Security: identity comes from a JWT (`token` cookie or bearer header);
  never log tokens or prompts.
- Failed turns are data, not HTTP errors: poll the pending message to read
  its `error_code`.
"""
