from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #
# See supported colors at: https://www.w3schools.com/colors/colors_x11.asp

# Total character width of the progress bar text
DEFAULT_PROGRESS_TEXT_N: int = 50
DEFAULT_N: int = 50
# Color of the progress bar description text
DEFAULT_DESCRIPTION_STYLE: str = "white"
# Width of the progress bar
DEFAULT_BAR_WIDTH: int = 40
# Color of the filled/complete portion of the progress bar
DEFAULT_BAR_COLUMN_COMPLETE_STYLE: str = "honeydew2"
# Color used when the progress bar is finished
DEFAULT_FINISHED_STYLE: str = "dark_cyan"
# Color of the percentage complete text (e.g., "85%")
DEFAULT_PROGRESS_PERCENTAGE_STYLE: str = "honeydew2"
# Color of the "X of Y complete" text (e.g., "4 of 7")
DEFAULT_M_OF_N_COMPLETE_STYLE: str = "honeydew2"
# Color of the time elapsed display (e.g., "E: 00:01:25")
DEFAULT_TIME_ELAPSED_STYLE: str = "light_sky_blue1"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_OUTPUT_DIR = Path("results")

# ==================================================================================== #
# INPUT
# ==================================================================================== #
DEFAULT_META_ID_COLUMN = '#sampleid'
DEFAULT_ORIENTATION = 'auto'
ORIENTATIONS = ('auto', 'samples_as_rows', 'taxa_as_rows')

# What to do with samples lacking metadata / taxa lacking taxonomy
DEFAULT_MISSING_METADATA = 'drop'
DEFAULT_MISSING_TAXONOMY = 'raise'
ORPHAN_POLICIES = ('drop', 'raise')

DEFAULT_RANK_NAMES = ['Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus']
UNCLASSIFIED = 'Unclassified'

# QIIME-style rank prefixes, in rank order
TAXONOMY_PREFIXES = ['d', 'p', 'c', 'o', 'f', 'g']
# Values that upstream classifiers emit for an empty rank
UNASSIGNED_VALUES = {'', 'na', 'nan', 'none', 'unassigned', 'unclassified', 'unknown'}

# ==================================================================================== #
# NORMALIZATION & PRUNING
# ==================================================================================== #
DEFAULT_NORMALIZATION_METHOD = 'scale'
NORMALIZATION_METHODS = ('scale', 'rarefy')
DEFAULT_DEPTH = 10000
DEFAULT_ROUNDING = 'round'
ROUNDING_POLICIES = ('round', 'floor')
DEFAULT_PRUNE_THRESHOLD = 1e-4

# ==================================================================================== #
# MODEL
# ==================================================================================== #
DEFAULT_LABEL_COLUMN = 'station'
DEFAULT_N_TREES = 500
DEFAULT_MAX_FEATURES = 'sqrt'
DEFAULT_RANDOM_STATE = 42
DEFAULT_N_JOBS = 1
DEFAULT_TOP_K = 20

# ==================================================================================== #
# COMPOSITION
# ==================================================================================== #
DEFAULT_COMPOSITION_RANKS = ['Phylum']
