"""Organism allow-list and the record filter built on it."""

import logging
from typing import Iterable, Optional

from .records import ProteinRecord

logger = logging.getLogger(__name__)

# NCBI taxonomy ids of the organisms worth grounding against
DEFAULT_ORGANISMS = {
    '9606': 'Homo sapiens',
    '10090': 'Mus musculus',
    '10116': 'Rattus norvegicus',
    '559292': 'Saccharomyces cerevisiae S288C',
    '7227': 'Drosophila melanogaster',
    '6239': 'Caenorhabditis elegans',
    '7955': 'Danio rerio',
    '3702': 'Arabidopsis thaliana',
    '83333': 'Escherichia coli K-12',
    '2697049': 'SARS-CoV-2',
}


def is_supported_organism(org_id: Optional[str], allow_list: Iterable[str] = None) -> bool:
    """Check an organism id against the allow-list.

    A missing id is unsupported, never a pass-through.
    """
    if org_id is None:
        return False
    supported = DEFAULT_ORGANISMS.keys() if allow_list is None else allow_list
    return str(org_id) in supported


class OrganismFilter:
    """Gate deciding which candidate records are indexed."""

    def __init__(self, allow_list: Optional[Iterable[str]] = None):
        if allow_list is None:
            self.allow_list = frozenset(DEFAULT_ORGANISMS)
        else:
            self.allow_list = frozenset(str(org_id) for org_id in allow_list)
        logger.debug(f"Organism filter allows {len(self.allow_list)} organisms")

    def accept(self, record: ProteinRecord) -> bool:
        return is_supported_organism(record.organism, self.allow_list)

    def __call__(self, record: ProteinRecord) -> bool:
        return self.accept(record)
