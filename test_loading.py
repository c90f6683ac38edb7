import pandas as pd
import pytest

from workflow_otu.amplicon_data.loader import join_tables, load_community_data, orient_table
from workflow_otu.config import get_config
from workflow_otu.exceptions import MissingKeyError
from workflow_otu.utils.biom import export_h5py, import_abundance_table
from workflow_otu.utils.metadata import import_metadata_tsv
from workflow_otu.utils.taxonomy_utils import import_taxonomy_table, taxstring


def test_load_detects_taxa_as_rows(input_files, station_data):
    data = load_community_data(
        input_files['abundance'], input_files['taxonomy'], input_files['metadata']
    )
    assert list(data.sample_ids) == list(station_data.sample_ids)
    assert list(data.taxon_ids) == list(station_data.taxon_ids)
    assert list(data.taxonomy.columns) == [
        'Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus'
    ]
    assert data.taxonomy.loc['otu8', 'Order'] == 'Chloroplast'
    assert data.metadata.loc['C1', 'sample_type'] == 'control'
    assert (data.abundance.values == station_data.abundance.values).all()


def test_explicit_orientation(station_data):
    meta = station_data.metadata
    table = station_data.abundance.T
    assert orient_table(table, meta, 'taxa_as_rows').equals(station_data.abundance)
    assert orient_table(table, meta, 'samples_as_rows') is table
    with pytest.raises(ValueError):
        orient_table(table, meta, 'sideways')


def test_orientation_without_shared_ids_raises(station_data):
    meta = station_data.metadata.rename(index=lambda s: f'other_{s}')
    with pytest.raises(MissingKeyError):
        orient_table(station_data.abundance, meta)


def test_samples_without_metadata_are_dropped(station_data):
    meta = station_data.metadata.drop(index=['S03'])
    data = join_tables(station_data.abundance, station_data.taxonomy, meta)
    assert 'S03' not in data.sample_ids
    assert data.n_samples == station_data.n_samples - 1


def test_samples_without_metadata_can_fail(station_data):
    meta = station_data.metadata.drop(index=['S03'])
    with pytest.raises(MissingKeyError) as excinfo:
        join_tables(
            station_data.abundance, station_data.taxonomy, meta, missing_metadata='raise'
        )
    assert excinfo.value.ids == ['S03']
    assert excinfo.value.stage == 'load'


def test_taxa_without_taxonomy(station_data):
    taxonomy = station_data.taxonomy.drop(index=['otu4'])
    with pytest.raises(MissingKeyError):
        join_tables(station_data.abundance, taxonomy, station_data.metadata)

    data = join_tables(
        station_data.abundance, taxonomy, station_data.metadata, missing_taxonomy='drop'
    )
    assert 'otu4' not in data.taxon_ids


def test_sample_ids_match_ignoring_case_and_whitespace(station_data):
    meta = station_data.metadata.rename(index=lambda s: f' {s.lower()} ')
    data = join_tables(station_data.abundance, station_data.taxonomy, meta)
    assert list(data.metadata.index) == list(station_data.sample_ids)
    assert data.metadata.loc['S00', 'station'] == 'north'


def test_duplicate_metadata_ids_raise(tmp_path):
    path = tmp_path / 'meta.tsv'
    pd.DataFrame({'#sampleid': ['a', 'A'], 'station': ['n', 's']}).to_csv(
        path, sep='\t', index=False
    )
    with pytest.raises(ValueError):
        import_metadata_tsv(path)


def test_qiime_taxonomy_strings(tmp_path):
    path = tmp_path / 'taxonomy.tsv'
    pd.DataFrame({
        'Feature ID': ['f1', 'f2'],
        'Taxon': [
            'd__Bacteria; p__Cyanobacteria; c__Cyanobacteriia; o__Chloroplast; f__; g__',
            'Unassigned',
        ],
        'Confidence': [0.99, 0.5],
    }).to_csv(path, sep='\t', index=False)
    taxonomy = import_taxonomy_table(path)
    assert taxonomy.loc['f1', 'Kingdom'] == 'Bacteria'
    assert taxonomy.loc['f1', 'Order'] == 'Chloroplast'
    assert taxonomy.loc['f1', 'Family'] == 'Unclassified'
    assert (taxonomy.loc['f2'] == 'Unclassified').all()
    assert taxstring(taxonomy.loc['f1']) == 'Bacteria;Cyanobacteria;Cyanobacteriia;Chloroplast'


def test_biom_table_is_read_as_samples_by_taxa(tmp_path, station_data):
    path = tmp_path / 'table.biom'
    export_h5py(station_data.abundance, path)
    table = import_abundance_table(path)
    assert list(table.index) == list(station_data.sample_ids)
    assert (table.values == station_data.abundance.values).all()


def test_negative_counts_rejected(tmp_path):
    path = tmp_path / 'table.tsv'
    pd.DataFrame({'a': [1, -2]}, index=['x', 'y']).to_csv(path, sep='\t')
    with pytest.raises(ValueError):
        import_abundance_table(path)


def test_config_resolves_relative_paths(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(
        "input:\n"
        "  abundance: ./otu_table.tsv\n"
        "  taxonomy: ./taxonomy.tsv\n"
        "  metadata: ./metadata.tsv\n"
    )
    config = get_config(path)
    assert config['input']['abundance'] == (tmp_path / 'otu_table.tsv').resolve()

    path.write_text(
        "input:\n"
        "  abundance: a.tsv\n"
        "  taxonomy: b.tsv\n"
        "  metadata: c.tsv\n"
        "normalization:\n"
        "  rounding: ceil\n"
    )
    with pytest.raises(ValueError):
        get_config(path)


def _write_tables(tmp_path, table, sample_ids, taxon_ids):
    table.to_csv(tmp_path / 'table.tsv', sep='\t')
    pd.DataFrame(
        {'Rank1': 'Bacteria', 'Rank2': 'Firmicutes'},
        index=pd.Index(taxon_ids, name='OTU')
    ).to_csv(tmp_path / 'taxonomy.tsv', sep='\t')
    pd.DataFrame(
        {'station': ['north', 'south', 'north']},
        index=pd.Index(sample_ids, name='#sampleid')
    ).to_csv(tmp_path / 'metadata.tsv', sep='\t')
    return tmp_path / 'table.tsv', tmp_path / 'taxonomy.tsv', tmp_path / 'metadata.tsv'


@pytest.mark.parametrize('sample_ids', [['001', '002', '003'], ['1.10', '1.20', '1.30']])
def test_numeric_looking_sample_ids_survive(tmp_path, sample_ids):
    taxon_ids = ['otuA', 'otuB']
    table = pd.DataFrame([[5, 1], [2, 8], [3, 3]], index=sample_ids, columns=taxon_ids)
    paths = _write_tables(tmp_path, table, sample_ids, taxon_ids)
    data = load_community_data(*paths, orientation='samples_as_rows')
    assert list(data.sample_ids) == sample_ids
    assert data.abundance.loc[sample_ids[1], 'otuB'] == 8


def test_numeric_looking_taxon_ids_survive(tmp_path):
    sample_ids = ['s1', 's2', 's3']
    taxon_ids = ['0001', '1.10']
    table = pd.DataFrame([[5, 2, 3], [1, 8, 3]], index=taxon_ids, columns=sample_ids)
    paths = _write_tables(tmp_path, table, sample_ids, taxon_ids)
    data = load_community_data(*paths, rank_names=['Kingdom', 'Phylum'])
    assert list(data.taxon_ids) == taxon_ids
    assert list(data.taxonomy.index) == taxon_ids
    assert data.abundance.loc['s2', '1.10'] == 8


def test_metadata_skips_qiime_directive_row(tmp_path):
    path = tmp_path / 'metadata.tsv'
    pd.DataFrame({
        '#sampleid': ['#q2:types', ' 007 ', '010'],
        'station': ['categorical', 'north', 'south'],
    }).to_csv(path, sep='\t', index=False)
    meta = import_metadata_tsv(path)
    assert list(meta.index) == ['007', '010']
    assert meta.index.name == '#sampleid'
    assert list(meta.columns) == ['station']
