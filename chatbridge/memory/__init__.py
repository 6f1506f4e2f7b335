"""Conversation memory package.

Scope:
    Short-term, in-process chat history (`session.ChatSession`) used by the
    terminal adapter. The HTTP adapter is stateless: callers send the full
    history with each request.

Non-goals:
    - No persistence to disk or database.
    - No summarization or retrieval.
"""
