# lvis/config_test.py

# --- SMOKE TEST PARAMETERS ---
# These settings are intentionally small to ensure a very fast run.

# --- Dataset Parameters ---
IMAGE_PATH = "results/smoke_images"
IMAGE_FILE = "smoke"
IMAGE_EXTS = [".png"]
SPLIT_CHAR = "_"
SPLIT_BY_ITEM = True
N_TEST_PER_CAT = 1
CACHE_DIR = "results/smoke_cache/"
DELETE_CATS = []
SELECT_CATS = []
NUM_CATS = 4            # synthetic categories
ITEMS_PER_CAT = 3       # synthetic objects per category
VIEWS_PER_ITEM = 2      # renders per object

# --- Trial Sequencing ---
SEQUENTIAL = False
N_RUNS = 1
N_EPOCHS = 2
N_TRIALS = 8
SEED = 73

# --- Augmentation ---
TRANS_MAX = (0.2, 0.2)
TRANS_SIGMA = 0.15
SCALE_RANGE = (0.8, 1.1)
ROTATE_MAX = 8.0

# --- V1 Filtering ---
IMAGE_SIZE = (128, 128)
HIGH16 = False
COLOR_DOG = True
PARALLEL_FILTERS = False

# --- Output Patterns ---
OUT_SIZE = (2, 2)
N_OUT_PER = 2
MAX_OUT = 0
OUT_RANDOM = False
RND_PCT_ON = 0.2
RND_MIN_DIFF = 0.5
PATTERN_MAX_ITERS = 1000

# --- Workers ---
NUM_WORKERS = 2

# --- Output ---
# Save to a separate file to not overwrite full simulation results
RESULTS_FILE = "results/smoketest_metrics.json"
MODEL_FILE = "results/smoketest_prototypes.pkl"
VERBOSE = False
