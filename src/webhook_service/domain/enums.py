"""Webhook event catalog."""
from __future__ import annotations

from enum import Enum


class WebhookEvent(str, Enum):
    """Host-domain events a subscription may listen to."""

    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"
    PROJECT_SHARED = "project.shared"
    PROJECT_EXPORTED = "project.exported"
    SLIDE_CREATED = "slide.created"
    SLIDE_UPDATED = "slide.updated"
    SLIDE_DELETED = "slide.deleted"
    COLLABORATOR_ADDED = "collaborator.added"
    COLLABORATOR_REMOVED = "collaborator.removed"
    COMMENT_CREATED = "comment.created"
    COMMENT_RESOLVED = "comment.resolved"
    PRESENTATION_STARTED = "presentation.started"
    PRESENTATION_ENDED = "presentation.ended"
    AI_GENERATION_COMPLETED = "ai.generation.completed"


SUPPORTED_EVENTS: tuple[str, ...] = tuple(event.value for event in WebhookEvent)

# Sent by the test endpoint only; not subscribable.
TEST_EVENT = "webhook.test"
