"""Tests for UniProt ingestion orchestration."""

from unittest.mock import AsyncMock

import pytest

from config.settings import Settings
from observability.prometheus_metrics import get_metrics_text
from pipelines.errors import SourceError, StoreError
from pipelines.records import ProteinRecord
from sources.registry import AggregateDatasource, DatasourceRegistry
from sources.uniprot import UniprotDatasource


def call_names(mock):
    return [call[0] for call in mock.mock_calls]


@pytest.mark.asyncio
async def test_ingestion_call_sequence(sample_xml, settings):
    store = AsyncMock()
    datasource = UniprotDatasource(store, settings)

    stats = await datasource.update_from_file(sample_xml)

    assert call_names(store) == [
        'ensure_index',
        'clear_namespace',
        'disable_auto_refresh',
        'insert_records',
        'insert_records',
        'enable_auto_refresh',
        'refresh_index',
    ]
    store.clear_namespace.assert_awaited_once_with('uniprot')
    for call in store.insert_records.await_args_list:
        assert call.kwargs == {'refresh_after': False}
    assert stats.records_built == 6
    assert stats.records_accepted == 4
    assert stats.batches_inserted == 2


@pytest.mark.asyncio
async def test_failed_insert_leaves_refresh_disabled(sample_xml, settings):
    store = AsyncMock()
    store.insert_records.side_effect = StoreError("disk full", operation='insert_records')
    datasource = UniprotDatasource(store, settings)

    with pytest.raises(StoreError):
        await datasource.update_from_file(sample_xml)

    store.enable_auto_refresh.assert_not_awaited()
    store.refresh_index.assert_not_awaited()
    # nothing after the failing batch reaches the store
    assert store.insert_records.await_count == 1


@pytest.mark.asyncio
async def test_malformed_source_fails_ingestion(write_xml, settings):
    path = write_xml('<uniprot><entry><accession>P1</accession>')
    store = AsyncMock()
    datasource = UniprotDatasource(store, settings)

    with pytest.raises(SourceError):
        await datasource.update_from_file(path)

    store.enable_auto_refresh.assert_not_awaited()


@pytest.mark.asyncio
async def test_end_to_end_ingest(sample_xml, settings, store):
    datasource = UniprotDatasource(store, settings)

    stats = await datasource.update_from_file(sample_xml)

    assert stats.records_inserted == 4
    assert await store.count('uniprot') == 4
    assert await store.is_auto_refresh_enabled()
    assert {r['id'] for r in await datasource.search('p53')} == {'P04637', 'P02340'}
    assert {r['id'] for r in await datasource.search('TP53')} == {'P04637', 'P02340'}
    assert await datasource.get('A0A000') is None

    mdm2 = await datasource.get('Q00987')
    assert mdm2['proteinNames'] == ['E3 ubiquitin-protein ligase Mdm2', 'MDM2', 'Hdm2']
    assert mdm2['organism'] == '9606'


@pytest.mark.asyncio
async def test_reingest_replaces_namespace(sample_xml, settings, store):
    datasource = UniprotDatasource(store, settings)
    await datasource.update_from_file(sample_xml)
    await store.insert_records([ProteinRecord(namespace='uniprot', type='protein', id='STALE1')])
    await store.insert_records([ProteinRecord(namespace='chebi', type='chemical', id='CHEBI:1')])

    await datasource.update_from_file(sample_xml)

    assert await store.get('STALE1', 'uniprot') is None
    assert await store.count('uniprot') == 4
    assert await store.count('chebi') == 1


@pytest.mark.asyncio
async def test_clear_is_idempotent(sample_xml, settings, store):
    datasource = UniprotDatasource(store, settings)
    await datasource.update_from_file(sample_xml)

    assert await datasource.clear() == 4
    assert await datasource.clear() == 0
    assert await store.count('uniprot') == 0


@pytest.mark.asyncio
async def test_update_downloads_then_ingests(sample_xml, settings):
    store = AsyncMock()
    downloader = AsyncMock()
    downloader.download.return_value = sample_xml
    datasource = UniprotDatasource(store, settings, downloader=downloader)

    stats = await datasource.update(force=True)

    downloader.download.assert_awaited_once_with(
        settings.uniprot_url, settings.uniprot_file_name, True
    )
    assert stats.source_path == str(sample_xml)


@pytest.mark.asyncio
async def test_ingestion_metrics_exported(sample_xml, settings):
    await UniprotDatasource(AsyncMock(), settings).update_from_file(sample_xml)

    text = get_metrics_text().decode()

    assert 'grounding_records_filtered_total{namespace="uniprot",outcome="rejected"}' in text
    assert 'grounding_ingestion_runs_total{namespace="uniprot",status="success"}' in text


def test_source_path(settings):
    datasource = UniprotDatasource(AsyncMock(), settings)
    assert datasource.source_path == settings.input_path / settings.uniprot_file_name


class TestRegistry:

    def test_lookup(self, settings):
        registry = DatasourceRegistry(AsyncMock(), settings)

        assert registry.namespaces == ['uniprot']
        assert isinstance(registry.get('uniprot'), UniprotDatasource)
        assert isinstance(registry.get(None), AggregateDatasource)
        assert registry.get('aggregate') is registry.aggregate
        assert registry.get('ncbi') is None

    @pytest.mark.asyncio
    async def test_aggregate_search_and_get(self, sample_xml, settings, store):
        registry = DatasourceRegistry(store, settings)
        await registry.get('uniprot').update_from_file(sample_xml)
        await store.insert_records([ProteinRecord(namespace='chebi', type='chemical', id='CHEBI:9',
                                                  name='p53 activator')])

        results = await registry.aggregate.search('p53')

        assert {r['namespace'] for r in results} == {'uniprot', 'chebi'}
        assert (await registry.aggregate.get('uniprot', 'P04637'))['name'] == 'P53_HUMAN'
        assert await registry.aggregate.get('chebi', 'CHEBI:9') is None


def generated_dump(count, organism='9606'):
    entries = ''.join(
        f'<entry><accession>G{i:05d}</accession><name>GEN{i}_HUMAN</name>'
        f'<organism><dbReference type="NCBI Taxonomy" id="{organism}"/></organism></entry>'
        for i in range(count)
    )
    return f'<uniprot xmlns="http://uniprot.org/uniprot">{entries}</uniprot>'


@pytest.mark.asyncio
async def test_entry_without_accession_is_skipped(write_xml, settings, store):
    path = write_xml(
        '<uniprot>'
        '<entry><accession>P1</accession><name>FIRST_HUMAN</name>'
        '<organism><dbReference type="NCBI Taxonomy" id="9606"/></organism></entry>'
        '<entry><name>NOACC_HUMAN</name>'
        '<organism><dbReference type="NCBI Taxonomy" id="9606"/></organism></entry>'
        '<entry><accession>P3</accession><name>THIRD_HUMAN</name>'
        '<organism><dbReference type="NCBI Taxonomy" id="9606"/></organism></entry>'
        '</uniprot>'
    )
    datasource = UniprotDatasource(store, settings)

    stats = await datasource.update_from_file(path)

    assert stats.records_built == 3
    assert stats.records_accepted == 2
    assert await store.count('uniprot') == 2
    assert await store.is_auto_refresh_enabled()
    assert {r['id'] for r in await datasource.search('human')} == {'P1', 'P3'}
    assert 'outcome="missing_id"' in get_metrics_text().decode()


@pytest.mark.asyncio
async def test_generated_dump_inserted_in_three_ordered_batches(write_xml, tmp_path):
    path = write_xml(generated_dump(250))
    store = AsyncMock()
    batches = []

    async def insert_records(batch, refresh_after=False):
        batches.append([record.id for record in batch])

    store.insert_records.side_effect = insert_records
    datasource = UniprotDatasource(store, Settings(input_path=tmp_path, batch_size=100))

    stats = await datasource.update_from_file(path)

    assert [len(batch) for batch in batches] == [100, 100, 50]
    assert [rid for batch in batches for rid in batch] == [f'G{i:05d}' for i in range(250)]
    assert stats.batches_inserted == 3
    assert stats.records_inserted == 250


@pytest.mark.asyncio
async def test_search_weights_organisms(write_xml, settings, store):
    path = write_xml(
        '<uniprot>'
        '<entry><accession>P04637</accession><name>P53_HUMAN</name>'
        '<gene><name>TP53</name></gene>'
        '<organism><dbReference type="NCBI Taxonomy" id="9606"/></organism></entry>'
        '<entry><accession>P02340</accession><name>P53_MOUSE</name>'
        '<gene><name>Tp53</name></gene>'
        '<organism><dbReference type="NCBI Taxonomy" id="10090"/></organism></entry>'
        '</uniprot>'
    )
    datasource = UniprotDatasource(store, settings)
    await datasource.update_from_file(path)

    mouse_first = await datasource.search('tp53', organism_counts={'10090': 5, '9606': 1})
    human_first = await datasource.search('tp53', organism_counts={'9606': 3})

    assert [r['id'] for r in mouse_first] == ['P02340', 'P04637']
    assert [r['id'] for r in human_first] == ['P04637', 'P02340']
