"""Record types produced by the extraction pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ProteinRecord:
    """One entity extracted from a top-level ``entry`` element.

    Field write policies:
        id: first write wins, later accessions are secondary ids.
        name: last write wins.
        organism: set from the organism cross-reference.
        protein_names / gene_names: append-only, document order.
    """
    namespace: str
    type: str
    id: Optional[str] = None
    name: Optional[str] = None
    organism: Optional[str] = None
    protein_names: List[str] = field(default_factory=list)
    gene_names: List[str] = field(default_factory=list)

    def set_id(self, value: str) -> None:
        if self.id is None:
            self.id = value

    def set_name(self, value: str) -> None:
        self.name = value

    def set_organism(self, value: Optional[str]) -> None:
        self.organism = value

    def add_protein_name(self, value: str) -> None:
        self.protein_names.append(value)

    def add_gene_name(self, value: str) -> None:
        self.gene_names.append(value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the document shape stored and returned by searches."""
        return {
            'id': self.id,
            'namespace': self.namespace,
            'type': self.type,
            'name': self.name,
            'organism': self.organism,
            'proteinNames': list(self.protein_names),
            'geneNames': list(self.gene_names),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProteinRecord':
        return cls(
            namespace=data['namespace'],
            type=data['type'],
            id=data.get('id'),
            name=data.get('name'),
            organism=data.get('organism'),
            protein_names=list(data.get('proteinNames') or []),
            gene_names=list(data.get('geneNames') or []),
        )
