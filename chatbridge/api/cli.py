"""
Interactive terminal adapter for chatbridge.

Architectural role:
- Builds a `ChatbotClient` from environment configuration and CLI flags.
- Keeps the conversation in a `ChatSession` and sends the full history each turn.
- Renders streamed deltas as they arrive, or the buffered answer.

Request lifecycle (per user turn):
1. Read stdin.
2. Handle local control commands (`exit`/`quit`, `clear chat`, `new chat`,
   `/model`, `/temperature`, `/max-tokens`, `/config`).
3. Append the user turn and call the client (stream or buffered).
4. Store the assistant turn; failed turns are marked, cancelled turns keep
   their partial text.

Cancellation:
- Every turn (streaming or `--no-stream`) runs on a worker thread. Ctrl+C in
  the main thread cancels the `CancelToken`, which aborts the in-flight HTTP
  request. Streamed text already printed is kept as a truncated answer; a
  cancelled buffered turn is marked failed.
- Ctrl+C at the prompt exits.

Error handling strategy:
- Configuration errors abort startup with a one-line message.
- Provider/transport errors print one line and keep the loop alive.
"""

from dotenv import load_dotenv

load_dotenv()

import argparse
import logging
import sys
import threading

from chatbridge.llm import provider_config
from chatbridge.llm.errors import ChatbridgeError, ConfigurationError
from chatbridge.llm.service import client_from_env
from chatbridge.llm.transport import CancelToken
from chatbridge.memory.session import ChatSession


SEPARATOR = "-" * 60


# =========================================================
# UTF-8 SAFE OUTPUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (OSError, ValueError):
        pass


# =========================================================
# COMMANDS
# =========================================================

def format_config(client) -> str:
    config = client.get_config()
    return (
        f"provider={config.provider.value} model={config.model} "
        f"temperature={config.temperature} max_tokens={config.max_tokens}"
    )


def handle_command(client, session, text, out=print):
    """Run a local control command.

    Returns:
        `None` when `text` is not a command, `True` to keep looping, `False`
        to exit.
    """
    lowered = text.lower()

    if lowered in ("exit", "quit"):
        out("Shutting down.")
        return False

    if lowered in ("empty chat", "clear chat"):
        session.clear()
        out("Chat cleared.")
        return True

    if lowered == "new chat":
        out(f"New session: {session.start_new_session()}")
        return True

    if lowered == "/config":
        out(format_config(client))
        return True

    updates = {
        "/model": ("model", str),
        "/temperature": ("temperature", float),
        "/max-tokens": ("max_tokens", int),
    }
    parts = text.split(maxsplit=1)
    if parts[0].lower() not in updates:
        return None

    field_name, cast = updates[parts[0].lower()]
    if len(parts) == 1:
        out(f"Usage: {parts[0]} <value>")
        return True
    try:
        client.update_config(**{field_name: cast(parts[1].strip())})
    except (ValueError, ConfigurationError) as e:
        out(f"Invalid value: {e}")
        return True
    out(format_config(client))
    return True


# =========================================================
# TURNS
# =========================================================

def run_interruptible(target, token):
    """Run `target` on a worker thread; Ctrl+C cancels `token` instead of exiting."""
    worker = threading.Thread(target=target, daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.1)
        except KeyboardInterrupt:
            token.cancel()


def ask_buffered(client, session, out=print):
    """Buffered turn on a worker thread; Ctrl+C cancels the request."""
    history = session.messages()
    reply_id = session.add_message("assistant")
    token = CancelToken()
    outcome = {"result": None, "error": None}

    def run():
        try:
            outcome["result"] = client.chat(history, cancel_token=token)
        except ChatbridgeError as e:
            outcome["error"] = e

    run_interruptible(run, token)

    error = outcome["error"]
    if error is not None:
        session.update_message(reply_id, error=str(error))
        if getattr(error, "cancelled", False):
            out("[cancelled]")
        else:
            out(f"Error: {error}")
        return None
    result = outcome["result"]
    if result is None:
        return None
    session.update_message(reply_id, content=result.content)
    out(result.content)
    return result


def ask_streaming(client, session, write=None):
    """Streaming turn on a worker thread; Ctrl+C cancels the request.

    Returns:
        Tuple `(completed, error)`.
    """
    write = write or (lambda text: print(text, end="", flush=True))
    history = session.messages()
    reply_id = session.add_message("assistant")
    token = CancelToken()
    outcome = {"completed": False, "error": None}

    def on_chunk(text):
        session.append_to_message(reply_id, text)
        write(text)

    def on_error(error):
        outcome["error"] = error
        # A cancelled answer stays in the history as truncated text.
        if not getattr(error, "cancelled", False):
            session.update_message(reply_id, error=str(error))

    def on_complete():
        outcome["completed"] = True

    def run():
        client.chat_stream(
            history,
            on_chunk=on_chunk,
            on_error=on_error,
            on_complete=on_complete,
            cancel_token=token,
        )

    run_interruptible(run, token)
    return outcome["completed"], outcome["error"]


# =========================================================
# MAIN
# =========================================================

def build_parser():
    parser = argparse.ArgumentParser(description="Chat with Groq, Gemini or HuggingFace")
    parser.add_argument("--provider", choices=sorted(p.value for p in provider_config.PROVIDERS))
    parser.add_argument("--model")
    parser.add_argument("--temperature", type=float)
    parser.add_argument("--max-tokens", type=int)
    parser.add_argument("--no-stream", action="store_true", help="wait for full answers")
    return parser


def main(argv=None):
    """Run the interactive loop. Returns a process exit code."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=provider_config.LOG_LEVEL.upper())

    preferences = {"provider": args.provider, "model": args.model}
    try:
        client = client_from_env(preferences)
        client.update_config(temperature=args.temperature, max_tokens=args.max_tokens)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 2

    session = ChatSession()

    print("chatbridge started. (Type 'exit' to quit, Ctrl+C cancels an answer)")
    print(format_config(client))
    print(SEPARATOR)

    while True:

        try:
            question = input("You: ").strip()

        except EOFError:
            print()
            break

        except KeyboardInterrupt:
            print("\nInterrupted.")
            break

        if not question:
            continue

        handled = handle_command(client, session, question)
        if handled is False:
            break
        if handled:
            continue

        session.add_message("user", question)
        print("\nAssistant:\n")

        if args.no_stream:
            ask_buffered(client, session)
        else:
            _, error = ask_streaming(client, session)
            print()
            if error is not None:
                if getattr(error, "cancelled", False):
                    print("[cancelled: answer truncated]")
                else:
                    print(f"Error: {error}")

        print("\n" + SEPARATOR + "\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
