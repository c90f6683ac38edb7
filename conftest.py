import numpy as np
import pandas as pd
import pytest

from workflow_otu.utils.data import CommunityData

RANKS = ['Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus']


def make_data(abundance, metadata, taxonomy=None):
    """Build a CommunityData from a samples × taxa DataFrame and metadata."""
    abundance = abundance.copy()
    if taxonomy is None:
        taxonomy = pd.DataFrame(
            [['Bacteria', 'Proteobacteria', 'Gammaproteobacteria',
              'Enterobacterales', 'Enterobacteriaceae', f'Genus{i}']
             for i in range(abundance.shape[1])],
            index=abundance.columns, columns=RANKS
        )
    return CommunityData(
        abundance=abundance,
        taxonomy=taxonomy.loc[abundance.columns].copy(),
        metadata=metadata.loc[abundance.index].copy()
    )


@pytest.fixture
def small_data():
    """Two samples over three taxa: A:[10,0,5], B:[0,20,0]."""
    abundance = pd.DataFrame(
        [[10, 0, 5], [0, 20, 0]], index=['A', 'B'], columns=['t1', 't2', 't3']
    )
    metadata = pd.DataFrame({'station': ['north', 'south']}, index=['A', 'B'])
    return make_data(abundance, metadata)


@pytest.fixture
def station_data():
    """Twelve samples from two stations plus two controls.

    otu1 is abundant at station 'north', otu2 at 'south'; otu9 only occurs in
    the control samples; otu8 is a chloroplast.
    """
    rng = np.random.RandomState(0)
    samples = [f'S{i:02d}' for i in range(12)] + ['C1', 'C2']
    taxa = [f'otu{i}' for i in range(1, 10)]
    counts = rng.randint(1, 30, size=(len(samples), len(taxa)))
    counts[:6, 0] += 400   # otu1 → north
    counts[6:12, 1] += 400  # otu2 → south
    counts[:12, 8] = 0     # otu9 only in controls
    counts[12:, :8] = rng.randint(0, 3, size=(2, 8))
    counts[12:, 8] = 50
    abundance = pd.DataFrame(counts, index=samples, columns=taxa)

    metadata = pd.DataFrame({
        'station': ['north'] * 6 + ['south'] * 6 + ['north', 'south'],
        'sample_type': ['water'] * 12 + ['control'] * 2,
        'date': ['2019-06-04'] * 4 + ['2019-07-10'] * 10,
    }, index=samples)

    taxonomy = pd.DataFrame(
        [['Bacteria', f'Phylum{i % 3}', 'ClassX', 'OrderX', 'FamilyX', f'Genus{i}']
         for i in range(len(taxa))],
        index=taxa, columns=RANKS
    )
    taxonomy.loc['otu8', 'Order'] = 'Chloroplast'
    return make_data(abundance, metadata, taxonomy)


@pytest.fixture
def input_files(tmp_path, station_data):
    """Write station_data as taxa-as-rows TSVs the way QIIME exports them."""
    abundance_path = tmp_path / 'otu_table.tsv'
    table = station_data.abundance.T
    table.index.name = '#OTU ID'
    with open(abundance_path, 'w') as f:
        f.write('# Constructed from biom file\n')
        table.to_csv(f, sep='\t')

    taxonomy_path = tmp_path / 'taxonomy.tsv'
    tax = station_data.taxonomy.copy()
    tax.columns = [f'Rank{i}' for i in range(1, 7)]
    tax.index.name = 'OTU'
    tax.to_csv(taxonomy_path, sep='\t')

    metadata_path = tmp_path / 'metadata.tsv'
    meta = station_data.metadata.copy()
    meta.index.name = '#sampleid'
    meta.to_csv(metadata_path, sep='\t')

    return {
        'abundance': abundance_path,
        'taxonomy': taxonomy_path,
        'metadata': metadata_path,
    }
