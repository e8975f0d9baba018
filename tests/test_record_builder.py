"""Tests for the UniProt record builder state machine."""

import pytest

from pipelines.organisms import OrganismFilter
from pipelines.uniprot_builder import NameAccumulator, TagStack, UniprotRecordBuilder
from pipelines.xml_tokenizer import XmlTokenizer


class RecordingDispatcher:
    """Stands in for BatchDispatcher and keeps every offered record."""

    def __init__(self):
        self.records = []
        self.flushed = False

    def offer(self, record):
        self.records.append(record)

    async def flush_remainder(self):
        self.flushed = True


def make_builder(accept=None):
    dispatcher = RecordingDispatcher()
    builder = UniprotRecordBuilder(dispatcher, accept or (lambda record: True))
    return builder, dispatcher


async def build(path, accept=None, chunk_size=64 * 1024):
    builder, dispatcher = make_builder(accept)
    await XmlTokenizer(chunk_size).run(path, builder)
    return builder, dispatcher.records


def entry(body: str) -> str:
    return ('<uniprot xmlns="http://uniprot.org/uniprot"><entry>'
            f'{body}'
            '<organism><dbReference type="NCBI Taxonomy" id="9606"/></organism>'
            '</entry></uniprot>')


class TestTagStack:

    def test_depth_lookup(self):
        stack = TagStack()
        for tag in ('uniprot', 'entry', 'protein'):
            stack.push(tag)

        assert stack.top == 'protein'
        assert stack.at(1) == 'entry'
        assert stack.at(2) == 'uniprot'
        assert stack.at(3) is None
        assert len(stack) == 3

    def test_pop_empty(self):
        assert TagStack().pop() is None


class TestNameAccumulator:

    def test_short_form_preferred(self):
        acc = NameAccumulator()
        acc.put('fullName', 'Phosphoprotein p53')
        acc.put('shortName', 'p53')
        assert acc.resolve() == 'p53'

    def test_short_form_only(self):
        acc = NameAccumulator()
        acc.put('shortName', 'UP1')
        assert acc.resolve() == 'UP1'

    def test_full_form_fallback(self):
        acc = NameAccumulator()
        acc.put('fullName', 'Antigen NY-CO-13')
        assert acc.resolve() == 'Antigen NY-CO-13'

    def test_reset(self):
        acc = NameAccumulator()
        acc.put('fullName', 'x')
        acc.reset()
        assert not acc
        assert acc.resolve() is None


class TestRecordBuilder:

    @pytest.mark.asyncio
    async def test_sample_dump(self, sample_xml):
        builder, records = await build(sample_xml, OrganismFilter())

        assert builder.records_built == 6
        assert builder.records_accepted == 4
        assert [r.id for r in records] == ['P04637', 'Q00987', 'Q8CFX1', 'P02340']

    @pytest.mark.asyncio
    async def test_sample_dump_record_fields(self, sample_xml):
        _, records = await build(sample_xml, OrganismFilter())
        p53 = records[0]

        assert p53.namespace == 'uniprot'
        assert p53.type == 'protein'
        assert p53.name == 'P53_HUMAN'
        assert p53.organism == '9606'
        assert p53.protein_names == [
            'Cellular tumor antigen p53',
            'Antigen NY-CO-13',
            'p53',
            'Tumor suppressor p53',
        ]
        assert p53.gene_names == ['TP53', 'P53']

    @pytest.mark.asyncio
    async def test_small_chunks_give_same_records(self, sample_xml):
        _, large = await build(sample_xml, OrganismFilter())
        _, small = await build(sample_xml, OrganismFilter(), chunk_size=7)

        assert [r.to_dict() for r in small] == [r.to_dict() for r in large]

    @pytest.mark.asyncio
    async def test_first_accession_wins(self, write_xml):
        path = write_xml(entry('<accession>P1</accession><accession>P2</accession>'))

        _, records = await build(path)

        assert records[0].id == 'P1'

    @pytest.mark.asyncio
    async def test_last_name_wins(self, write_xml):
        path = write_xml(entry('<accession>P1</accession><name>FIRST</name><name>SECOND</name>'))

        _, records = await build(path)

        assert records[0].name == 'SECOND'

    @pytest.mark.asyncio
    async def test_recommended_name_keeps_both_forms(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession><protein><recommendedName>'
            '<fullName>E3 ubiquitin-protein ligase Mdm2</fullName><shortName>MDM2</shortName>'
            '</recommendedName></protein>'
        ))

        _, records = await build(path)

        assert records[0].protein_names == ['E3 ubiquitin-protein ligase Mdm2', 'MDM2']

    @pytest.mark.asyncio
    async def test_submitted_name_prefers_short_form(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession><protein><submittedName>'
            '<fullName>Uncharacterized protein</fullName><shortName>UP1</shortName>'
            '</submittedName></protein>'
        ))

        _, records = await build(path)

        assert records[0].protein_names == ['UP1']

    @pytest.mark.asyncio
    async def test_submitted_name_with_only_short_form(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession><protein><submittedName>'
            '<shortName>UP1</shortName>'
            '</submittedName></protein>'
        ))

        _, records = await build(path)

        assert records[0].protein_names == ['UP1']

    @pytest.mark.asyncio
    async def test_submitted_name_with_only_full_form(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession><protein><submittedName>'
            '<fullName>Uncharacterized protein</fullName>'
            '</submittedName></protein>'
        ))

        _, records = await build(path)

        assert records[0].protein_names == ['Uncharacterized protein']

    @pytest.mark.asyncio
    async def test_alternative_names_in_document_order(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession><protein>'
            '<alternativeName><fullName>Alpha</fullName></alternativeName>'
            '<alternativeName><shortName>B</shortName><fullName>Beta</fullName></alternativeName>'
            '</protein>'
        ))

        _, records = await build(path)

        assert records[0].protein_names == ['Alpha', 'B']

    @pytest.mark.asyncio
    async def test_gene_names(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession>'
            '<gene><name type="primary">MDM2</name><name type="synonym">HDM2</name></gene>'
        ))

        _, records = await build(path)

        assert records[0].gene_names == ['MDM2', 'HDM2']

    @pytest.mark.asyncio
    async def test_organism_filter_rejects(self, write_xml):
        path = write_xml(
            '<uniprot><entry><accession>P1</accession>'
            '<organism><dbReference type="NCBI Taxonomy" id="123456"/></organism></entry>'
            '<entry><accession>P2</accession></entry></uniprot>'
        )

        builder, records = await build(path, OrganismFilter())

        assert records == []
        assert builder.records_built == 2
        assert builder.records_accepted == 0

    @pytest.mark.asyncio
    async def test_cross_references_outside_organism_ignored(self, write_xml):
        path = write_xml(
            '<uniprot><entry><accession>P1</accession>'
            '<dbReference type="PDB" id="1A1U"/>'
            '<reference><citation><dbReference type="PubMed" id="6396087"/></citation></reference>'
            '</entry></uniprot>'
        )

        _, records = await build(path)

        assert records[0].organism is None

    @pytest.mark.asyncio
    async def test_nested_entry_is_not_a_record(self, write_xml):
        path = write_xml(
            '<uniprot><wrapper><entry><accession>X1</accession></entry></wrapper>'
            '<entry><accession>P1</accession></entry></uniprot>'
        )

        _, records = await build(path)

        assert [r.id for r in records] == ['P1']

    @pytest.mark.asyncio
    async def test_unrecognized_structure_is_inert(self, write_xml):
        path = write_xml(entry(
            '<accession>P1</accession>'
            '<comment type="function"><text>Acts as a tumor suppressor.</text></comment>'
            '<organism><name type="scientific">Homo sapiens</name></organism>'
            '<feature><name>ignored</name></feature>'
            '<sequence length="3">MEE</sequence>'
        ))

        _, records = await build(path)
        record = records[0]

        assert record.name is None
        assert record.protein_names == []
        assert record.gene_names == []

    def test_blank_text_ignored(self):
        builder, dispatcher = make_builder()
        builder.on_open_tag('uniprot', {})
        builder.on_open_tag('entry', {})
        builder.on_open_tag('accession', {})
        builder.on_text('   \n\t ')
        builder.on_text('P1')
        builder.on_close_tag('accession')
        builder.on_close_tag('entry')

        assert dispatcher.records[0].id == 'P1'

    def test_text_outside_entry_ignored(self):
        builder, dispatcher = make_builder()
        builder.on_open_tag('uniprot', {})
        builder.on_open_tag('copyright', {})
        builder.on_text('Copyrighted by the UniProt Consortium')
        builder.on_close_tag('copyright')
        builder.on_close_tag('uniprot')

        assert builder.record is None
        assert dispatcher.records == []

    @pytest.mark.asyncio
    async def test_end_flushes_dispatcher(self, write_xml):
        path = write_xml(entry('<accession>P1</accession>'))
        builder, dispatcher = make_builder()

        await XmlTokenizer().run(path, builder)

        assert dispatcher.flushed
        assert builder.finished
