"""Pipelines package for the grounding service.

Provides XML tokenizing, record building, organism filtering and ordered
batch delivery.
"""

from .errors import GroundingError, SourceError, StoreError, DownloadError
from .records import ProteinRecord
from .organisms import DEFAULT_ORGANISMS, OrganismFilter, is_supported_organism
from .dispatcher import BatchDispatcher
from .xml_tokenizer import XmlTokenizer, collect_events
from .uniprot_builder import UniprotRecordBuilder, UNIPROT_NS, PROTEIN_TYPE

__all__ = [
    # Errors
    'GroundingError',
    'SourceError',
    'StoreError',
    'DownloadError',

    # Records
    'ProteinRecord',

    # Organisms
    'DEFAULT_ORGANISMS',
    'OrganismFilter',
    'is_supported_organism',

    # Delivery
    'BatchDispatcher',

    # Parsing
    'XmlTokenizer',
    'collect_events',
    'UniprotRecordBuilder',
    'UNIPROT_NS',
    'PROTEIN_TYPE'
]
