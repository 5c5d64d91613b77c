"""
Interactive CLI adapter for Synapse Agent.

Architectural role:
- Exposes terminal interaction over the core engine with a single local session.
- Delegates all orchestration to `synapse.core.engine.Engine.run`.

Request lifecycle (per user turn, CLI):
1. Read stdin.
2. Handle local control commands (`exit`/`quit`, `clear`, `/file <path>`).
3. Send the text (plus any attached file) to the engine.
4. Print events as they arrive.

Hard trigger handling:
- `/file <path>` attaches a document to the next message; it is not sent alone.
- Tool prefixes such as `/web_search` are passed through to the intent router.

Error handling strategy:
- Unreadable files are reported and not attached.
- EOF and keyboard interrupts terminate the loop without traceback output.
"""

from dotenv import load_dotenv

load_dotenv()

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from synapse.core.engine import Engine, build_engine
from synapse.core.events import EventKind, ProgressEvent
from synapse.core.request import AgentRequest, UploadedFile
from synapse.core.scratchpad import Scratchpad


logger = logging.getLogger(__name__)


# =========================================================
# UTF-8 SAFE OUTPUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, ValueError):
        logger.debug("stdout encoding could not be reconfigured")


# =========================================================
# EVENT RENDERING
# =========================================================

class PrintingSink:
    """Event sink that writes events to a text stream as they arrive."""

    def __init__(self, out=None) -> None:
        self.out = out or sys.stdout
        self._mid_text = False

    @property
    def closed(self) -> bool:
        return False

    async def send(self, event: ProgressEvent) -> None:
        self.out.write(render_event(event, self._mid_text))
        self.out.flush()
        self._mid_text = event.kind is EventKind.TEXT

    def end_turn(self) -> None:
        if self._mid_text:
            self.out.write("\n")
        self._mid_text = False


def render_event(event: ProgressEvent, mid_text: bool = False) -> str:
    prefix = "\n" if mid_text and event.kind is not EventKind.TEXT else ""

    if event.kind is EventKind.TEXT:
        return str(event.payload)
    if event.kind is EventKind.THOUGHT:
        return f"{prefix}[thinking] {str(event.payload).strip()}\n"
    if event.kind is EventKind.ERROR:
        return f"{prefix}[error] {event.payload}\n"
    if event.kind is EventKind.FINAL_OUTPUT:
        # Already streamed as text chunks for most tools.
        return f"{prefix}" + "-" * 60 + "\n"
    if event.kind is EventKind.TABLE:
        return prefix + render_table(event.payload)
    if event.kind is EventKind.EMAIL_PREVIEW:
        payload = event.payload
        return (
            f"{prefix}[email preview] To: {payload.get('to')} | Subject: {payload.get('subject')}\n"
            f"{payload.get('message', '')}\n"
        )
    return f"{prefix}[{event.kind.value}] {json.dumps(event.payload, default=str)}\n"


def render_table(payload: dict) -> str:
    lines = [str(payload.get("caption", "")), " | ".join(payload.get("headers", []))]
    for row in payload.get("rows", []):
        lines.append(" | ".join(str(cell) for cell in row))
    return "\n".join(lines) + "\n"


def load_attachment(path_text: str) -> UploadedFile:
    """Read a local file as an upload; the media type is guessed from its name."""
    path = Path(os.path.expanduser(path_text.strip().strip('"')))
    return UploadedFile.from_upload(path.read_bytes(), None, path.name)


# =========================================================
# MAIN
# =========================================================

async def run_turn(engine: Engine, scratchpad: Scratchpad, text: str, attachment: UploadedFile | None) -> None:
    sink = PrintingSink()
    await engine.run(AgentRequest(text=text or None, file=attachment), scratchpad, sink)
    sink.end_turn()


def main():
    """
    Run the interactive loop against a single in-process scratchpad.
    """
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())

    engine = build_engine()
    scratchpad = Scratchpad()
    attachment: UploadedFile | None = None

    print("Synapse Agent started. (Type 'exit' to quit, '/file <path>' to attach a document)\n")
    print("-" * 60)

    while True:

        try:
            question = input("You: ").strip()

        except EOFError:
            print("\nSession ended.")
            break

        except KeyboardInterrupt:
            print("\nOperation cancelled by user.")
            break

        if not question:
            continue

        if question.lower() in ("exit", "quit"):
            print("Shutting down.")
            break

        if question.lower() == "clear":
            scratchpad.clear()
            attachment = None
            print("Workspace cleared.")
            continue

        if question.lower().startswith("/file"):
            _, _, path_text = question.partition(" ")
            if not path_text.strip():
                print("Usage: /file <path>")
                continue
            try:
                attachment = load_attachment(path_text)
            except OSError as e:
                print(f"Could not read file: {e}")
                continue
            print(f"Attached {attachment.name} ({attachment.media_type}). Type your message.")
            continue

        print()
        asyncio.run(run_turn(engine, scratchpad, question, attachment))
        attachment = None

        print("\n" + "-" * 60 + "\n")


if __name__ == "__main__":
    main()
