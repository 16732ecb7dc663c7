"""Fixed tunables of the retrieval and conversation core."""

# Conversation
MAX_HISTORY_SIZE = 20
MAX_REFERENCE_LENGTH = 300
UNKNOWN_SOURCE_LABEL = "未知来源"
EMPTY_REFERENCE_TEXT = "当前未检索到相关资料"

# Adaptive top-K
DEFAULT_RETRIEVAL_K = 5
MAX_RETRIEVAL_K = 10
LONG_QUERY_CHARS = 40
MEDIUM_QUERY_CHARS = 20
MULTI_INTENT_HINTS = ("以及", "和", "、", " and ", "as well as")

# Retrieval
MAX_RECALL_SIZE = 300
SHORT_QUERY_CHARS = 6
SHORT_QUERY_RECALL_FACTOR = 50
LONG_QUERY_RECALL_FACTOR = 30
VECTOR_QUERY_WEIGHT = 0.2
LEXICAL_RESCORE_WEIGHT = 1.0
MIN_ACCEPTABLE_SCORE = 0.25
PUBLIC_VISIBILITY = "PUBLIC"
ANONYMOUS_USER = "anonymous"

# CRAG
CRAG_REVIEW_SNIPPET_LENGTH = 240
CRAG_LLM_REVIEW_FACTOR = 1.5
DEFAULT_CLARIFY_QUESTION = "为了更准确回答，请补充问题的具体场景，例如涉及哪一年、学院或制度名称。"

# Completion budgets (tokens)
REWRITE_MAX_TOKENS = 256
ROUTING_MAX_TOKENS = 256
CRAG_MAX_TOKENS = 256
CLARIFY_MAX_TOKENS = 64
RERANK_MAX_TOKENS = 256

# Evaluation
EVAL_USER_ID = "eval"
EVAL_REFERENCE_LIMIT = 5
EVAL_SNIPPET_LENGTH = 280
