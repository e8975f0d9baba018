"""Record builder for UniProt XML dumps.

A per-document state machine driven by tokenizer events. It keeps the chain
of open tags and two short/full name accumulators, and emits one
``ProteinRecord`` per ``entry`` element directly under the ``uniprot`` root.
Finished records go through the organism filter and, when accepted, into the
batch dispatcher.

Structure the rules below do not mention is ignored rather than reported, so
schema additions in sub-elements we do not index are harmless.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from .dispatcher import BatchDispatcher
from .records import ProteinRecord

logger = logging.getLogger(__name__)

UNIPROT_NS = 'uniprot'
PROTEIN_TYPE = 'protein'

_BLANK = re.compile(r'^\s*$')


class XmlTags:
    UNIPROT = 'uniprot'
    ENTRY = 'entry'
    PROTEIN = 'protein'
    DB_REFERENCE = 'dbReference'
    ORGANISM = 'organism'
    ACCESSION = 'accession'
    NAME = 'name'
    GENE = 'gene'
    ALTERNATIVE_NAME = 'alternativeName'
    SUBMITTED_NAME = 'submittedName'
    RECOMMENDED_NAME = 'recommendedName'
    FULL_NAME = 'fullName'
    SHORT_NAME = 'shortName'


NAME_FORMS = (XmlTags.SHORT_NAME, XmlTags.FULL_NAME)


class TagStack:
    """Currently open elements, outermost first."""

    def __init__(self):
        self._tags: List[str] = []

    def push(self, tag: str) -> None:
        self._tags.append(tag)

    def pop(self) -> Optional[str]:
        return self._tags.pop() if self._tags else None

    def at(self, depth: int) -> Optional[str]:
        """Tag ``depth`` levels below the top (0 is the top), or None."""
        index = len(self._tags) - 1 - depth
        if index < 0:
            return None
        return self._tags[index]

    @property
    def top(self) -> Optional[str]:
        return self.at(0)

    def __len__(self) -> int:
        return len(self._tags)


class NameAccumulator:
    """Short/full name pair of one submitted or alternative name block."""

    def __init__(self):
        self._forms: Dict[str, str] = {}

    def put(self, form: str, text: str) -> None:
        self._forms[form] = text

    def resolve(self) -> Optional[str]:
        """Prefer the short form, fall back to the full form."""
        return self._forms.get(XmlTags.SHORT_NAME) or self._forms.get(XmlTags.FULL_NAME)

    def reset(self) -> None:
        self._forms = {}

    def __bool__(self) -> bool:
        return bool(self._forms)


class UniprotRecordBuilder:
    """Turns tokenizer events into filtered, batched ``ProteinRecord``s."""

    def __init__(self,
                 dispatcher: BatchDispatcher,
                 accept: Callable[[ProteinRecord], bool],
                 namespace: str = UNIPROT_NS,
                 record_type: str = PROTEIN_TYPE):
        self.dispatcher = dispatcher
        self.accept = accept
        self.namespace = namespace
        self.record_type = record_type

        self.stack = TagStack()
        self.record: Optional[ProteinRecord] = None
        self.alternative_name = NameAccumulator()
        self.submitted_name = NameAccumulator()

        self.records_built = 0
        self.records_accepted = 0
        self.finished = False

    # Tokenizer events

    def on_open_tag(self, name: str, attributes: Dict[str, str]) -> None:
        self.stack.push(name)
        parent = self.stack.at(1)

        if name == XmlTags.ENTRY and parent == XmlTags.UNIPROT:
            self.record = ProteinRecord(namespace=self.namespace, type=self.record_type)
        elif name == XmlTags.DB_REFERENCE and parent == XmlTags.ORGANISM:
            if self.record is not None:
                self.record.set_organism(attributes.get('id'))

    def on_close_tag(self, name: str) -> None:
        if name == XmlTags.ALTERNATIVE_NAME:
            self._push_resolved(self.alternative_name)
        elif name == XmlTags.SUBMITTED_NAME:
            self._push_resolved(self.submitted_name)
        elif name == XmlTags.ENTRY and self.stack.at(1) == XmlTags.UNIPROT:
            self._finalize()

        self.stack.pop()

    def on_text(self, text: str) -> None:
        if _BLANK.match(text) or self.record is None:
            return

        current = self.stack.at(0)
        parent = self.stack.at(1)
        grandparent = self.stack.at(2)

        if parent == XmlTags.ENTRY:
            if current == XmlTags.ACCESSION:
                self.record.set_id(text)
            elif current == XmlTags.NAME:
                self.record.set_name(text)
        elif parent == XmlTags.GENE and current == XmlTags.NAME:
            self.record.add_gene_name(text)
        elif grandparent == XmlTags.PROTEIN and current in NAME_FORMS:
            if parent == XmlTags.RECOMMENDED_NAME:
                # both forms of the recommended name are indexed
                self.record.add_protein_name(text)
            elif parent == XmlTags.SUBMITTED_NAME:
                self.submitted_name.put(current, text)
            elif parent == XmlTags.ALTERNATIVE_NAME:
                self.alternative_name.put(current, text)

    async def on_end(self) -> None:
        """Flush the partial batch and wait for all deliveries."""
        await self.dispatcher.flush_remainder()
        self.finished = True
        logger.info(f"Built {self.records_built} {self.namespace} records, "
                    f"accepted {self.records_accepted}")

    # Internals

    def _push_resolved(self, accumulator: NameAccumulator) -> None:
        name = accumulator.resolve()
        if name is not None and self.record is not None:
            self.record.add_protein_name(name)
        accumulator.reset()

    def _finalize(self) -> None:
        record, self.record = self.record, None
        if record is None:
            return

        self.records_built += 1
        if self.accept(record):
            self.records_accepted += 1
            self.dispatcher.offer(record)
