"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class MessageRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class PaymentStatus(StrEnum):
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    CANCELLED = "CANCELLED"
    DENIED = "DENIED"


class FrameType(StrEnum):
    """Outbound websocket frame types."""

    PONG = "pong"
    ACK = "ack"
    TYPING = "typing"
    TEXT_DELTA = "text_delta"
    MESSAGE = "message"
    NOTIFICATION = "notification"
    DAILY_BRIEF = "daily_brief"
    GOAL_CHECKIN = "goal_checkin"
    WORKFLOW_RESULT = "workflow_result"
