from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
from time import perf_counter
from datetime import datetime, timezone
from typing import Dict, List
from .state import session_store
from .models import (
	GenerateProblemsRequest,
	GenerateProblemsResponse,
	HintResponse,
	ProblemView,
	SessionHistoryResponse,
	SessionResults,
	SessionView,
	StartSessionRequest,
	SubmitAnswerRequest,
	SubmitAnswerResponse,
)
from .rounds import ROUND_CONFIGS, RoundConfig
from .services.gemini_client import GeminiProblemGenerator
from .services.problem_supplier import ProblemSupplier
from .services.session_engine import SessionEngine, SessionInactiveError, SessionStartError
from .config import settings

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("mathleague_prep")

app = FastAPI(default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

supplier = ProblemSupplier(GeminiProblemGenerator())
engines: Dict[str, SessionEngine] = {}

def session_view(engine: SessionEngine) -> SessionView:
	state = engine.state
	problem = state.current_problem
	return SessionView(
		session_id=state.session_id,
		round_type=state.round_type,
		phase=state.phase,
		current_index=state.current_index,
		problems_loaded=len(state.problems),
		question_count=state.round_config.question_count,
		current_problem=ProblemView.from_problem(problem) if problem else None,
		time_remaining_seconds=state.time_remaining_seconds,
		answered_count=state.answered_count,
		running_score=engine.running_score,
		hints_used=state.hints_used.get(state.current_index, 0),
		results=state.results,
		notices=list(engine.notices),
	)

def get_engine(session_id: str) -> SessionEngine:
	engine = engines.get(session_id)
	if engine is None:
		raise HTTPException(status_code=404, detail="session_not_found")
	return engine

@app.on_event("startup")
def on_startup() -> None:
	logger.info({
		"event": "api_startup",
		"utc_time": datetime.now(timezone.utc).isoformat(),
		"model": settings.gemini_model,
		"remote_generation": bool(settings.gemini_api_key),
		"batch_size": settings.problem_batch_size,
	})

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

@app.get("/api/health")
def health():
	return {
		"status": "healthy",
		"timestamp": datetime.now(timezone.utc).isoformat(),
		"message": "Math League practice API is running!",
	}

@app.get("/api/rounds", response_model=List[RoundConfig])
def list_rounds():
	return list(ROUND_CONFIGS.values())

@app.post("/api/problems/generate", response_model=GenerateProblemsResponse)
async def generate_problems(payload: GenerateProblemsRequest):
	gen_start = perf_counter()
	problems = await supplier.request_batch(
		payload.round_type,
		payload.difficulty,
		payload.grade_level,
		payload.count,
		topics=payload.topics,
	)
	if problems:
		await session_store.save_problems(problems)
	logger.debug({
		"event": "problems_generated",
		"round_type": payload.round_type.value,
		"count": len(problems),
		"remote_failures": supplier.remote_failures,
		"duration_ms": int((perf_counter() - gen_start) * 1000),
	})
	return GenerateProblemsResponse(problems=problems)

@app.post("/api/practice-sessions", response_model=SessionView)
async def start_practice_session(payload: StartSessionRequest):
	engine = SessionEngine(session_store, supplier, payload.student_id, payload.round_type)
	try:
		await engine.start()
	except SessionStartError as e:
		logger.warning({"event": "session_start_failed", "student_id": payload.student_id, "reason": e.reason})
		raise HTTPException(status_code=503, detail=e.reason)
	engines[engine.session_id] = engine
	return session_view(engine)

@app.get("/api/practice-sessions/{session_id}", response_model=SessionView)
async def get_practice_session(session_id: str):
	return session_view(get_engine(session_id))

@app.post("/api/practice-sessions/{session_id}/answer", response_model=SubmitAnswerResponse)
async def submit_answer(session_id: str, payload: SubmitAnswerRequest):
	engine = get_engine(session_id)
	try:
		outcome = await engine.submit_answer(payload.answer)
	except SessionInactiveError:
		raise HTTPException(status_code=409, detail="session_not_active")
	logger.debug({
		"event": "submit_answer",
		"session_id": session_id,
		"is_correct": outcome.is_correct,
		"index": engine.state.current_index,
		"phase": engine.state.phase.value,
	})
	return SubmitAnswerResponse(outcome=outcome, session=session_view(engine))

@app.post("/api/practice-sessions/{session_id}/hint", response_model=HintResponse)
async def request_hint(session_id: str):
	engine = get_engine(session_id)
	try:
		hint = engine.request_hint()
	except SessionInactiveError:
		raise HTTPException(status_code=409, detail="session_not_active")
	return HintResponse(hint=hint, hints_used=engine.state.hints_used.get(engine.state.current_index, 0))

@app.post("/api/practice-sessions/{session_id}/cancel", response_model=SessionView)
async def cancel_practice_session(session_id: str):
	engine = get_engine(session_id)
	engine.cancel()
	return session_view(engine)

@app.get("/api/practice-sessions/{session_id}/results", response_model=SessionResults)
async def get_session_results(session_id: str):
	engine = get_engine(session_id)
	if engine.results is None:
		raise HTTPException(status_code=409, detail="session_not_completed")
	return engine.results

@app.get("/api/students/{student_id}/sessions", response_model=SessionHistoryResponse)
def get_student_sessions(student_id: str, limit: int = 10):
	return SessionHistoryResponse(sessions=session_store.get_student_sessions(student_id, limit))
