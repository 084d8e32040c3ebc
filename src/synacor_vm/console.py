"""Character I/O collaborators for the Synacor VM.

The execution engine only ever emits one character code (``out``) or polls for
one character code (``in``). Where those characters come from and go to is
decided here, outside the core.

Input policy: ``Console.read()`` never blocks on behalf of the engine. It asks
the input source for one code; a source returning None means "nothing
available" and the ``in`` instruction leaves its destination untouched.
"""

import io
from typing import Callable, List, Optional, Union


InputSource = Callable[[], Optional[int]]
OutputSink = Callable[[str], None]


class QueuedInput:
    """Scripted input: feeds the UTF-8 bytes of queued text, then None.

    Attributes:
        pending: Bytes not yet consumed
    """

    def __init__(self, text: Union[str, bytes] = ""):
        self.pending = bytearray()
        self.feed(text)

    def feed(self, text: Union[str, bytes]) -> None:
        """Append more input."""
        if isinstance(text, str):
            text = text.encode("utf-8")
        self.pending.extend(text)

    def __call__(self) -> Optional[int]:
        if not self.pending:
            return None
        return self.pending.pop(0)

    def __len__(self) -> int:
        return len(self.pending)


class StreamInput:
    """Reads one byte per call from a file-like object; None at end of input.

    Text streams are read through their underlying binary buffer when they
    have one (e.g. ``sys.stdin``), otherwise character by character and
    re-encoded as UTF-8.
    """

    def __init__(self, stream):
        self.stream = getattr(stream, "buffer", stream)
        self._pending = bytearray()

    def __call__(self) -> Optional[int]:
        if not self._pending:
            chunk = self.stream.read(1)
            if not chunk:
                return None
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            self._pending.extend(chunk)
        return self._pending.pop(0)


class StreamOutput:
    """Writes each character to a text stream and flushes it."""

    def __init__(self, stream: io.TextIOBase):
        self.stream = stream

    def __call__(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()


class Console:
    """Bundle of one input source and one output sink.

    Everything written is also kept in ``buffer`` so callers can inspect the
    program's output after the fact.

    Attributes:
        input: Callable returning the next character code or None
        output: Callable receiving each emitted character, or None
        buffer: Characters written so far
    """

    def __init__(self, input: Optional[InputSource] = None, output: Optional[OutputSink] = None):
        self.input = input
        self.output = output
        self.buffer: List[str] = []

    def write(self, code: int) -> None:
        """Emit one character code, passed through ``chr`` unfiltered."""
        char = chr(code)
        self.buffer.append(char)
        if self.output is not None:
            self.output(char)

    def read(self) -> Optional[int]:
        """Poll for one character code; None when no input is available."""
        if self.input is None:
            return None
        return self.input()

    def getvalue(self) -> str:
        return "".join(self.buffer)

    def clear(self) -> None:
        self.buffer.clear()
