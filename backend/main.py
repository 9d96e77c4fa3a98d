"""Main entry point for the PDF RAG chat API."""
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS, LOG_LEVEL, PORT, PROVIDER_MIN_DELAY_MS, HISTORY_PAGE_SIZE
from logger import setup_logging
from models.api import (
    ChatRequest,
    ChatResponse,
    EntriesResponse,
    EntryModel,
    ErrorDetail,
    ErrorResponse,
    FeedbackRequest,
    FeedbackResponse,
    HistoryResponse,
    RelatedDocumentModel,
    SearchResultModel,
    TokenUsage,
    TurnModel,
)
from models.conversation import ConversationTurn
from services.answer_synthesizer import AnswerSynthesizer
from services.chat_history_store import ChatHistoryStore
from services.chat_pipeline import ChatPipeline, ChatResult
from services.conversation_manager import ConversationManager
from services.embedding_model import EmbeddingError, EmbeddingModel
from services.llm_client import LLMClient, LLMClientError
from services.query_refiner import QueryRefiner
from services.rate_limiter import RateLimiter
from services.retrieval_engine import RetrievalEngine
from services.vector_store import DimensionMismatchError, VectorStore

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PDF RAG Chat",
    description="Conversational question answering over a PDF collection",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def build_pipeline() -> ChatPipeline:
    """Construct every service once; the rate limiter is shared by both providers."""
    rate_limiter = RateLimiter(PROVIDER_MIN_DELAY_MS)

    llm_client = LLMClient(rate_limiter)
    embedding_model = EmbeddingModel(rate_limiter)

    vector_store = await VectorStore.connect()
    chat_store = await ChatHistoryStore.connect()
    await chat_store.setup_schema()

    return ChatPipeline(
        query_refiner=QueryRefiner(llm_client),
        retrieval_engine=RetrievalEngine(vector_store, embedding_model),
        answer_synthesizer=AnswerSynthesizer(llm_client),
        conversation_manager=ConversationManager(chat_store),
        vector_store=vector_store,
        embedding_model_name=embedding_model.model_name,
        generation_model_name=llm_client.model,
    )


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    logger.info("Initializing PDF RAG chat services...")
    try:
        app.state.pipeline = await build_pipeline()
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def get_pipeline(request: Request) -> ChatPipeline:
    return request.app.state.pipeline


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, details=details or {})
        ).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    logger.warning(f"Rejected invalid request to {request.url.path}", extra={"validation_errors": errors})
    return error_response(400, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


def _chat_response(result: ChatResult) -> ChatResponse:
    return ChatResponse(
        query=result.query,
        answer=result.answer,
        session_id=result.session_id,
        results=[SearchResultModel(score=r.score, payload=r.payload) for r in result.results],
        count=result.count,
        tokens_used=TokenUsage(
            refinement=result.tokens_used.refinement,
            embedding=result.tokens_used.embedding,
            generation=result.tokens_used.generation,
            total=result.tokens_used.total,
        ),
        related_documents=[RelatedDocumentModel(**d.to_dict()) for d in result.related_documents],
    )


def _turn_model(turn: ConversationTurn) -> TurnModel:
    return TurnModel(
        id=turn.id,
        session_id=turn.session_id,
        role=turn.role.value,
        content=turn.content,
        embedding_tokens=turn.embedding_tokens,
        generation_tokens=turn.generation_tokens,
        embedding_model=turn.embedding_model,
        generation_model=turn.generation_model,
        quality_rating=turn.quality_rating.value,
        related_documents=[RelatedDocumentModel(**d.to_dict()) for d in turn.related_documents],
        created_at=turn.created_at,
    )


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "PDF RAG Chat API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "pdf-rag-chat",
        "version": "1.0.0"
    }


@app.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def chat_endpoint(request: ChatRequest, pipeline: ChatPipeline = Depends(get_pipeline)):
    """
    Answer a question about the document collection.

    Refines the prompt against the session history, retrieves matching
    chunks, synthesizes a grounded answer and records both turns. A missing
    session_id starts a new session; the id to continue with is returned.
    """
    try:
        logger.info(f"Processing chat prompt: {request.prompt[:100]}...")
        result = await pipeline.chat(
            request.prompt,
            session_id=request.session_id,
            limit=request.limit,
            filter=request.filter
        )
        return _chat_response(result)

    except ValueError as e:
        return error_response(400, "VALIDATION_ERROR", str(e))
    except DimensionMismatchError as e:
        logger.error(f"Embedding dimension misconfigured: {e}", exc_info=True)
        return error_response(
            500, "DIMENSION_MISMATCH", str(e),
            {"expected": e.expected, "actual": e.actual}
        )
    except EmbeddingError as e:
        logger.error(f"Embedding provider error: {e}", exc_info=True)
        return error_response(503, "EMBEDDING_ERROR", str(e), {"error_type": type(e).__name__})
    except LLMClientError as e:
        logger.error(f"LLM client error: {e.error.message}")
        return error_response(503, e.error.code, e.error.message, e.error.details)
    except Exception as e:
        logger.error(f"Unexpected error processing chat: {e}", exc_info=True)
        return error_response(500, "INTERNAL_ERROR", f"Internal server error: {str(e)}")


@app.post("/feedback", response_model=FeedbackResponse, responses={400: {"model": ErrorResponse}})
async def feedback_endpoint(request: FeedbackRequest, pipeline: ChatPipeline = Depends(get_pipeline)):
    """Rate an assistant answer as good or bad."""
    try:
        success = await pipeline.feedback(request.turn_id, request.rating)
        return FeedbackResponse(success=success)
    except ValueError as e:
        return error_response(400, "VALIDATION_ERROR", str(e))
    except Exception as e:
        logger.error(f"Unexpected error storing feedback: {e}", exc_info=True)
        return error_response(500, "INTERNAL_ERROR", f"Internal server error: {str(e)}")


@app.get("/history", response_model=HistoryResponse)
async def history_endpoint(
    session_id: Optional[str] = None,
    limit: int = Query(default=HISTORY_PAGE_SIZE, ge=1, le=500),
    pipeline: ChatPipeline = Depends(get_pipeline)
):
    """Turns of a session, most recent first."""
    turns = await pipeline.history(session_id, limit)
    return HistoryResponse(
        history=[_turn_model(turn) for turn in turns],
        count=len(turns),
        session_id=session_id
    )


@app.get("/entries", response_model=EntriesResponse)
async def entries_endpoint(
    limit: int = Query(default=100, ge=1, le=10000),
    pipeline: ChatPipeline = Depends(get_pipeline)
):
    """Stored chunks with their payloads, without vectors."""
    try:
        entries = await pipeline.list_all(limit)
    except Exception as e:
        logger.error(f"Failed to list entries: {e}", exc_info=True)
        return error_response(500, "INTERNAL_ERROR", f"Internal server error: {str(e)}")

    return EntriesResponse(
        entries=[EntryModel(id=entry["id"], payload=entry["payload"]) for entry in entries],
        count=len(entries)
    )


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting PDF RAG Chat API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
