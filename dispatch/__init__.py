"""Dispatch Module - Background scoring on Redis Queue."""
from dispatch.dispatcher import BackgroundDispatcher
from dispatch.events import (
    SCORE_COMPLETED,
    SCORE_FAILED,
    SCORE_REQUESTED,
    EventPublisher,
)
from dispatch.tasks import process_score_task

__all__ = [
    'BackgroundDispatcher',
    'EventPublisher',
    'SCORE_COMPLETED',
    'SCORE_FAILED',
    'SCORE_REQUESTED',
    'process_score_task',
]
