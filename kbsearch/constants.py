# --- Pagination ---

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100
DEFAULT_SUGGEST_LIMIT = 10
INTENT_SUGGESTION_LIMIT = 5

# Each branch fetches this many times the requested window before fusion
SEARCH_OVERFETCH_FACTOR = 2


# --- Hybrid Weights ---

DEFAULT_LEXICAL_WEIGHT = 0.6
DEFAULT_SEMANTIC_WEIGHT = 0.4


# --- Candidates ---

CANDIDATE_LIMIT = 100  # caps documents sent to the scoring model per query
CANDIDATE_EXCERPT_LIMIT = 500  # chars of content per candidate in the scoring prompt
EMBEDDING_TEXT_LIMIT = 8000


# --- Snippets ---

SNIPPET_LENGTH = 200
MIN_HIGHLIGHT_TERM_LENGTH = 2


# --- Keyword Fallback Scoring (0-100 scale) ---

FALLBACK_NAME_WEIGHT = 30
FALLBACK_CONTENT_WEIGHT = 10
FALLBACK_MAX_SCORE = 100


# --- LLM ---

INTENT_TEMPERATURE = 0.3
INTENT_MAX_TOKENS = 200
SCORING_TEMPERATURE = 0.3
# Reply budget grows with the candidate count: one {index, score, reason} item each
SCORING_BASE_TOKENS = 200
SCORING_TOKENS_PER_CANDIDATE = 40
LLM_TIMEOUT = 30.0  # seconds per completion, retries included
LLM_MAX_ATTEMPTS = 3


# --- Batch ---

BATCH_CONCURRENCY = 4
