"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
STORE_PATH = Path(os.getenv("STORE_PATH", str(DATA_DIR / "chunks.json")))

# Prediction Guard configuration
PREDICTIONGUARD_URL = os.getenv("PREDICTIONGUARD_URL", "https://api.predictionguard.com")
PREDICTIONGUARD_API_KEY = os.getenv("PGKEY", "")
CHAT_MODEL = os.getenv("CHAT_MODEL", "Hermes-2-Pro-Mistral-7B")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "bridgetower-large-itm-mlm-itc")
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10.0"))

# Chunking parameters (whitespace-separated tokens)
CHUNK_WINDOW_SIZE = int(os.getenv("CHUNK_WINDOW_SIZE", "100"))
CHUNK_OVERLAP_SIZE = int(os.getenv("CHUNK_OVERLAP_SIZE", "10"))
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "20"))    # provider batch limit

# Generation
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "1000"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.1"))
ANSWER_TIMEOUT = float(os.getenv("ANSWER_TIMEOUT", "10.0"))
STREAM_BUFFER_SIZE = int(os.getenv("STREAM_BUFFER_SIZE", "1000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")
