"""
Configuration for the recipe vector store builder and query service.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
ASSETS_DIR = Path(os.getenv("RECIPEVEC_ASSETS_DIR", str(PROJECT_ROOT / "assets")))
MODELS_DIR = PROJECT_ROOT / "models"

EMBEDDINGS_FILENAME = "embeddings.bin"
RECIPES_FILENAME = "recipes.json"
META_FILENAME = "dataset_meta.json"

# Embedding model (build and runtime MUST share these)
EMBEDDING_MODEL = os.getenv("RECIPEVEC_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
DIM = 384

# Precision ladder for the runtime loader: first entry is tried first,
# the next one is the more quantized fallback.
PRIMARY_PRECISION = "fp32"
FALLBACK_PRECISION = "qint8"
MODEL_PRECISIONS: List[str] = [PRIMARY_PRECISION, FALLBACK_PRECISION]
ONNX_QUANTIZED_FILE = os.getenv("RECIPEVEC_ONNX_FILE", "onnx/model_qint8_avx512.onnx")

HF_ENV_VARS = {
    "HF_HUB_ENABLE_HF_TRANSFER": "0",
    "HF_HOME": str(MODELS_DIR),
    "HF_HUB_OFFLINE": os.getenv("HF_HUB_OFFLINE", "0"),
}

# Output shape inference: buffers longer than DIM * ratio are treated as
# un-pooled per-token output.  Best effort, not a backend guarantee.
POOLING_RATIO = float(os.getenv("RECIPEVEC_POOLING_RATIO", "1.5"))

# Batch embedding (keep modest to bound peak memory)
EMBED_BATCH_SIZE = int(os.getenv("RECIPEVEC_BATCH", "48"))
EMBED_DOC_INSTRUCTIONS_CHARS = 1200

# Datasets (redistributable with attribution)
OPEN_RECIPES_URL = (
    "https://raw.githubusercontent.com/jakevdp/open-recipe-data/main/recipeitems.json.gz"
)
WIKIBOOKS_JSON_URL = (
    "https://huggingface.co/datasets/gossminn/wikibooks-cookbook/resolve/main/recipes_parsed.mini.json"
)

# Per-source caps (resource bound only)
MAX_OPENRECIPES = int(os.getenv("RECIPEVEC_MAX_OPENRECIPES", "15000"))
MAX_WIKIBOOKS = int(os.getenv("RECIPEVEC_MAX_WIKIBOOKS", "4000"))

# Record shaping
MAX_INGREDIENT_LINES = 300
MIN_INGREDIENT_LINE_CHARS = 2  # lines must be strictly longer
MAX_TAGS = 14
DEDUPE_KEY_CHARS = 280
MIN_INSTRUCTIONS_CHARS = 10  # instructions must be strictly longer

SEARCH_STRATEGY = "brute-force-cosine"
SEARCH_DEFAULT_TOP_K = 20

# HTTP hardening
HTTP_CONNECT_TIMEOUT = 10.0
HTTP_READ_TIMEOUT = 120.0
HTTP_MAX_REDIRECTS = 5
HTTP_USER_AGENT = "recipevec-builder/1.0"
FETCH_WORKERS = 2


# Pydantic schemas
class Recipe(BaseModel):
    id: str
    source: str
    title: str = ""
    url: str = ""
    ingredients: str = ""
    ingredients_lines: List[str] = Field(default_factory=list)
    instructions: str = ""
    tags: List[str] = Field(default_factory=list)


class SourceInfo(BaseModel):
    name: str
    license: str
    ref: str


DATASET_SOURCES: List[SourceInfo] = [
    SourceInfo(
        name="Wikibooks Cookbook",
        license="CC BY-SA 4.0",
        ref="https://en.wikibooks.org/wiki/Cookbook:Recipes",
    ),
    SourceInfo(
        name="Open Recipes / open-recipe-data",
        license="CC BY 3.0",
        ref="https://github.com/jakevdp/open-recipe-data",
    ),
]


class BuildMetadata(BaseModel):
    buildId: str
    model: str
    dim: int = Field(gt=0)
    count: int = Field(ge=0)
    search: str = SEARCH_STRATEGY
    sources: List[SourceInfo] = Field(default_factory=list)


class EmbedRequest(BaseModel):
    id: str
    text: str


class EmbedResponse(BaseModel):
    id: str
    vec: Optional[List[float]] = None
    error: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: int = Field(SEARCH_DEFAULT_TOP_K, ge=1, le=200)


class SearchHit(BaseModel):
    label: int
    score: float
    recipe: Dict


class SearchResponse(BaseModel):
    results: List[SearchHit]


class HealthResponse(BaseModel):
    status: str
