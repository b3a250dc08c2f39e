"""
Orchestrator module for managing interview sessions and follow-up generation.
"""

from recruitment_interviews.orchestrator.background import GenerationWorker, WorkerStats
from recruitment_interviews.orchestrator.interview_orchestrator import (
    FALLBACK_QUESTIONS,
    InterviewOrchestrator,
    Reservation,
)
from recruitment_interviews.orchestrator.locks import KeyedLocks
from recruitment_interviews.orchestrator.policy import InterviewPolicy

__all__ = [
    "FALLBACK_QUESTIONS",
    "GenerationWorker",
    "InterviewOrchestrator",
    "InterviewPolicy",
    "KeyedLocks",
    "Reservation",
    "WorkerStats",
]
