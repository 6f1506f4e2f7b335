"""chatbridge API adapter package.

Architectural role:
- Defines the external interaction boundary for terminal and HTTP interfaces.
- Performs input validation and response shaping.
- Delegates all provider work to `chatbridge.llm.client.ChatbotClient`.
"""
