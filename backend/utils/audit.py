"""
Structured audit logging module for the alumni community backend.

This module provides an AuditLogger class that logs events to a dedicated 'audit' logger
in structured JSON format. It supports context-aware request_id propagation across async
calls using contextvars.ContextVar.

Key features:
- Async-safe request_id and actor tracking via ContextVar
- Structured JSON output with ISO8601 timestamps
- Convenience methods for login/logout and membership changes
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Context variable for tracking request_id across async calls
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)

# Context variable for tracking actor (authenticated user) across async calls
_actor_context: ContextVar[Optional[str]] = ContextVar(
    'actor', default=None
)


class AuditLogger:
    """
    Structured audit logger for authentication and membership events.

    All events are written to a dedicated 'audit' logger in JSON format.
    """

    def __init__(self):
        """Initialize the AuditLogger with a dedicated 'audit' logger."""
        self.logger = logging.getLogger('audit')

    def set_request_id(self, request_id: str) -> None:
        """
        Set the request_id for the current context.

        Args:
            request_id: Unique identifier for the current request/operation
        """
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def set_actor(self, actor: str) -> None:
        """Set the authenticated user for this request context."""
        _actor_context.set(actor)

    def get_actor(self) -> Optional[str]:
        """Get the current actor from context, or None."""
        return _actor_context.get()

    def log(
        self,
        action: str,
        actor: str,
        resource: str,
        resource_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Core method to log a structured audit event.

        Args:
            action: Type of action performed (e.g., 'LOGIN', 'APPROVE', 'EXIT')
            actor: User performing the action; 'user' means "take it from context"
            resource: Type of resource affected (e.g., 'User', 'Session')
            resource_id: Unique identifier of the affected resource
            status: Result status (e.g., 'success', 'failure', 'noop')
            details: Optional dict of additional context
        """
        event = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'action': action,
            'actor': actor if actor != 'user' else (self.get_actor() or 'user'),
            'resource': resource,
            'resource_id': resource_id,
            'status': status,
            'request_id': self.get_request_id(),
            'details': details or {},
        }
        self.logger.info(json.dumps(event, default=str))

    def log_login(self, user_id: str, provider: str, status: str = 'success') -> None:
        self.log(
            action='LOGIN',
            actor=f"user:{user_id}",
            resource='User',
            resource_id=user_id,
            status=status,
            details={'provider': provider},
        )

    def log_login_failure(self, provider: str, reason: str) -> None:
        self.log(
            action='LOGIN',
            actor='anonymous',
            resource='Session',
            resource_id='-',
            status='failure',
            details={'provider': provider, 'reason': reason},
        )

    def log_logout(self, user_id: Optional[str]) -> None:
        self.log(
            action='LOGOUT',
            actor=f"user:{user_id}" if user_id else 'anonymous',
            resource='Session',
            resource_id=user_id or '-',
            status='success',
        )

    def log_membership_change(
        self,
        action: str,
        user_id: str,
        old_value: Any,
        new_value: Any,
    ) -> None:
        """
        Log an approve/reject/promote/demote/status change.

        Args:
            action: 'APPROVE', 'REJECT', 'PROMOTE', 'DEMOTE' or 'SET_STATUS'
            user_id: Member whose record changed
            old_value: Previous status or admin flag
            new_value: New status or admin flag
        """
        self.log(
            action=action,
            actor='user',
            resource='User',
            resource_id=user_id,
            status='success' if old_value != new_value else 'noop',
            details={'old': old_value, 'new': new_value},
        )

    def log_community_exit(self, user_id: str, has_reason: bool, status: str) -> None:
        self.log(
            action='EXIT',
            actor=f"user:{user_id}",
            resource='User',
            resource_id=user_id,
            status=status,
            details={'reason_given': has_reason},
        )


# Global audit logger instance for convenient import
audit = AuditLogger()
