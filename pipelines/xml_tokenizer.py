"""Pull-style XML tokenizer feeding tag events to a handler.

The document is never materialised as a tree: bytes are read in chunks and
pushed through an lxml parser whose target forwards open-tag, close-tag and
text events, in document order, to a handler object implementing::

    on_open_tag(name, attributes)
    on_close_tag(name)
    on_text(text)
    async on_end()
"""

import asyncio
import gzip
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from lxml import etree

from .errors import SourceError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def local_name(tag: str) -> str:
    """Strip the namespace from an lxml ``{uri}name`` tag."""
    if tag and tag[0] == '{':
        return tag.split('}', 1)[1]
    return tag


class _EventTarget:
    """lxml parser target translating callbacks into handler events."""

    def __init__(self, handler: Any):
        self.handler = handler
        self._text: List[str] = []

    def _flush_text(self):
        # lxml may split character data; the handler sees one text event
        if self._text:
            text = ''.join(self._text)
            self._text = []
            self.handler.on_text(text)

    def start(self, tag, attrib):
        self._flush_text()
        attributes = {local_name(key): value for key, value in attrib.items()}
        self.handler.on_open_tag(local_name(tag), attributes)

    def end(self, tag):
        self._flush_text()
        self.handler.on_close_tag(local_name(tag))

    def data(self, data):
        self._text.append(data)

    def close(self):
        self._flush_text()


def _open_source(path: Path):
    if path.suffix == '.gz':
        return gzip.open(path, 'rb')
    return open(path, 'rb')


class XmlTokenizer:
    """Streams one XML document from disk through a tag-event handler."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError("Chunk size must be positive")
        self.chunk_size = chunk_size

    async def run(self,
                  source_path: Union[str, Path],
                  handler: Any,
                  before_chunk: Optional[Callable[[], Awaitable[None]]] = None) -> None:
        """Tokenize ``source_path``, then await ``handler.on_end()`` once.

        Args:
            source_path: Path to an XML document, optionally gzip-compressed
            handler: Receiver of the tag events
            before_chunk: Optional coroutine awaited before each chunk is fed,
                used by consumers to apply backpressure

        Raises:
            SourceError: If the file is missing, unreadable or not well-formed
        """
        path = Path(source_path)
        if not path.is_file():
            raise SourceError(f"Source file not found: {path}", path=str(path))

        parser = etree.XMLParser(
            target=_EventTarget(handler),
            resolve_entities=False,
            no_network=True,
            huge_tree=True
        )

        chunks = 0
        try:
            with _open_source(path) as stream:
                while True:
                    if before_chunk is not None:
                        await before_chunk()

                    chunk = stream.read(self.chunk_size)
                    if not chunk:
                        break

                    parser.feed(chunk)
                    chunks += 1

                    # let in-flight store operations progress between chunks
                    await asyncio.sleep(0)

            parser.close()
        except etree.XMLSyntaxError as e:
            raise SourceError(f"Malformed XML in {path}: {e}", path=str(path)) from e
        except (OSError, EOFError) as e:
            raise SourceError(f"Failed to read {path}: {e}", path=str(path)) from e

        logger.debug(f"Tokenized {path} in {chunks} chunks")
        await handler.on_end()


async def collect_events(source_path: Union[str, Path],
                         chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[tuple]:
    """Tokenize a document into a list of ``(kind, ...)`` event tuples.

    Mostly useful for debugging fixtures.
    """
    events: List[tuple] = []

    class _Recorder:
        def on_open_tag(self, name: str, attributes: Dict[str, str]):
            events.append(('open', name, attributes))

        def on_close_tag(self, name: str):
            events.append(('close', name))

        def on_text(self, text: str):
            events.append(('text', text))

        async def on_end(self):
            events.append(('end',))

    await XmlTokenizer(chunk_size).run(source_path, _Recorder())
    return events
