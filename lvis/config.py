# --- Dataset Parameters ---
IMAGE_PATH = "images/CU3D_100_renders_lr20_u30_nb"
IMAGE_FILE = "cu3d100old"          # tag for the cached category / split lists
IMAGE_EXTS = [".png"]
SPLIT_CHAR = "_"
SPLIT_BY_ITEM = True
N_TEST_PER_CAT = 2
CACHE_DIR = "cache/"
# most confusable categories are removed from the set
DELETE_CATS = ["blade", "flashlight", "pckeyboard", "scissors", "screwdriver", "submarine"]
SELECT_CATS = []

# --- Trial Sequencing ---
SEQUENTIAL = False
N_RUNS = 1
N_EPOCHS = 500
N_TRIALS = 512
SEED = 73

# --- Augmentation ---
TRANS_MAX = (0.2, 0.2)
TRANS_SIGMA = 0.0
SCALE_RANGE = (0.8, 1.1)
ROTATE_MAX = 8.0

# --- V1 Filtering ---
IMAGE_SIZE = (128, 128)
HIGH16 = False
COLOR_DOG = True
PARALLEL_FILTERS = False

# --- Output Patterns ---
OUT_SIZE = (10, 10)   # X, Y
N_OUT_PER = 5
MAX_OUT = 0
OUT_RANDOM = False
RND_PCT_ON = 0.2
RND_MIN_DIFF = 0.5
PATTERN_MAX_ITERS = 1000

# --- Workers ---
NUM_WORKERS = 4

# --- Output ---
RESULTS_FILE = "results/lvis_metrics.json"
MODEL_FILE = "models/lvis_prototypes.pkl"
VERBOSE = False
