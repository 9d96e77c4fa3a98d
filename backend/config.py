"""Configuration management for the PDF RAG chat service."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-mpnet-base-v2")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama-3.3-70b-versatile")

# Provider limits
MAX_EMBEDDING_INPUT_CHARS = int(os.getenv("MAX_EMBEDDING_INPUT_CHARS", "8000"))
MAX_CHUNK_CHARS = MAX_EMBEDDING_INPUT_CHARS * 2  # ~2 chars per token
PROVIDER_MIN_DELAY_MS = int(os.getenv("PROVIDER_MIN_DELAY_MS", "1000"))
RATE_LIMIT_BACKOFF_SECONDS = float(os.getenv("RATE_LIMIT_BACKOFF_SECONDS", "5"))

# Chunking Configuration
HEADING_PATTERN = r"^#+\s"
MIN_PARAGRAPH_LENGTH = 100  # characters
SECTION_HEADING_PATTERNS = [
    r"^((?:Article|Άρθρο) \d+[A-ZΑ-Ω]*\.?)[ \t]*",
    r"^((?:Chapter|Κεφάλαιο) [A-ZΑ-Ω0-9]+['΄]?\.?.*?)[ \t]*$",
    r"^((?:ANNEX|SECTION|ΠΑΡΑΡΤΗΜΑ|ΤΜΗΜΑ) [A-ZΑ-Ω0-9]+)[ \t]*$",
]

# Retrieval Configuration
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SCORE_THRESHOLD = float(os.getenv("DEFAULT_SCORE_THRESHOLD", "0.3"))

# Conversation Configuration
HISTORY_PAGE_SIZE = 50
SYNTHESIS_HISTORY_SIZE = 20

# Storage Configuration
CHUNK_TABLE = os.getenv("CHUNK_TABLE", "document_chunks")
CHAT_HISTORY_TABLE = os.getenv("CHAT_HISTORY_TABLE", "chat_history")

# Ingestion Configuration
DOCS_DIRECTORY = os.getenv("DOCS_DIRECTORY", "dataset")
SKIP_TRAILING_PAGES = int(os.getenv("SKIP_TRAILING_PAGES", "0"))
