"""Services for the PDF RAG chat service."""
from .rate_limiter import RateLimiter
from .text_normalizer import normalize
from .document_loader import DocumentLoader
from .chunking_engine import ChunkingEngine, MergeRules
from .embedding_model import Embedding, EmbeddingModel, EmbeddingError, EmbeddingRateLimitError
from .vector_store import VectorStore, DimensionMismatchError
from .chat_history_store import ChatHistoryStore
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError
from .query_refiner import QueryRefiner, RefinedQuery
from .retrieval_engine import RetrievalEngine, RetrievalResult
from .answer_synthesizer import AnswerSynthesizer, Answer
from .conversation_manager import ConversationManager
from .chat_pipeline import ChatPipeline, ChatResult
from .document_ingestor import DocumentIngestor, IngestionReport

__all__ = [
    'RateLimiter', 'normalize', 'DocumentLoader', 'ChunkingEngine', 'MergeRules',
    'Embedding', 'EmbeddingModel', 'EmbeddingError', 'EmbeddingRateLimitError',
    'VectorStore', 'DimensionMismatchError', 'ChatHistoryStore',
    'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError',
    'QueryRefiner', 'RefinedQuery', 'RetrievalEngine', 'RetrievalResult',
    'AnswerSynthesizer', 'Answer', 'ConversationManager', 'ChatPipeline', 'ChatResult',
    'DocumentIngestor', 'IngestionReport',
]
