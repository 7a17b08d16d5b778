"""
Services package for the voice tutor.
"""

from .answer_generator import AnswerGenerator, GenerationError
from .call_flow import CallFlowOrchestrator, CallState, TurnOutcome
from .deepgram_stt import DeepgramSTTService, TranscriptionError
from .deepgram_tts import DeepgramTTSService, SynthesisError
from .session_store import SessionStore, SessionStoreError

__all__ = [
    "AnswerGenerator",
    "GenerationError",
    "CallFlowOrchestrator",
    "CallState",
    "TurnOutcome",
    "DeepgramSTTService",
    "TranscriptionError",
    "DeepgramTTSService",
    "SynthesisError",
    "SessionStore",
    "SessionStoreError",
]
