"""Deferred execution queue backed by the scheduled_actions table."""

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from system_agent.database import SessionLocal
from system_agent.models.action import ScheduledAction

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"

Timestamp = Union[int, float, datetime]


def to_utc_datetime(timestamp: Timestamp) -> datetime:
    """Normalize an epoch timestamp or datetime to naive UTC."""
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is not None:
            return timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        return timestamp
    return datetime.fromtimestamp(timestamp, timezone.utc).replace(tzinfo=None)


class ActionQueue(Protocol):
    """What the orchestrator needs from a deferred execution facility."""

    def schedule_single_action(
        self,
        timestamp: Timestamp,
        hook: str,
        args: Dict[str, Any],
        group: str = "",
    ) -> Optional[int]:
        """
        Ask for hook(**args) to run at or after timestamp.

        Returns:
            An action handle, or a falsy value if the action was rejected
        """
        ...


class DatabaseActionQueue:
    """
    At-least-once action queue persisted in the database.

    Runners claim due actions in batches. A claim that is never completed
    (crashed worker) is released by release_stale_claims and the action runs
    again, so callbacks must tolerate repeated invocation.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """Initialize the queue."""
        self.session_factory = session_factory or SessionLocal
        # Claims from threads of one process go one at a time
        self._claim_lock = threading.Lock()

    def schedule_single_action(
        self,
        timestamp: Timestamp,
        hook: str,
        args: Dict[str, Any],
        group: str = "",
    ) -> Optional[int]:
        """Persist a pending action and return its id."""
        db = self.session_factory()
        try:
            action = ScheduledAction(
                hook=hook,
                args=dict(args or {}),
                group_name=group,
                status=STATUS_PENDING,
                scheduled_at=to_utc_datetime(timestamp),
                attempts=0,
            )
            db.add(action)
            db.commit()
            return action.action_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"DB error: schedule_single_action ({hook}): {e}")
            return None
        finally:
            db.close()

    def claim_due_actions(
        self,
        batch_size: int,
        now: Optional[datetime] = None,
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Claim up to batch_size due actions, oldest first.

        Each candidate is claimed with a conditional UPDATE that only matches
        while the row is still pending, so an action is handed to exactly one
        claim even on backends that ignore FOR UPDATE (SQLite).

        Returns:
            (claim_id, actions) where actions are plain dicts; claim_id is None
            when nothing was claimed
        """
        now = now or datetime.utcnow()
        claim_id = uuid.uuid4().hex

        with self._claim_lock:
            db = self.session_factory()
            try:
                candidate_ids = [
                    row.action_id
                    for row in db.query(ScheduledAction.action_id)
                    .filter(
                        ScheduledAction.status == STATUS_PENDING,
                        ScheduledAction.scheduled_at <= now,
                    )
                    .order_by(ScheduledAction.scheduled_at, ScheduledAction.action_id)
                    .limit(batch_size)
                    .with_for_update(skip_locked=True)
                    .all()
                ]

                for action_id in candidate_ids:
                    db.execute(
                        update(ScheduledAction)
                        .where(
                            ScheduledAction.action_id == action_id,
                            ScheduledAction.status == STATUS_PENDING,
                        )
                        .values(
                            status=STATUS_IN_PROGRESS,
                            claim_id=claim_id,
                            claimed_at=now,
                            attempts=func.coalesce(ScheduledAction.attempts, 0) + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )
                db.commit()

                if not candidate_ids:
                    return None, []

                # Rows another claim took in the meantime no longer carry our claim_id
                actions = (
                    db.query(ScheduledAction)
                    .filter(ScheduledAction.claim_id == claim_id)
                    .order_by(ScheduledAction.scheduled_at, ScheduledAction.action_id)
                    .all()
                )
                claimed = [
                    {
                        "action_id": action.action_id,
                        "hook": action.hook,
                        "args": dict(action.args or {}),
                        "group": action.group_name,
                        "attempts": action.attempts,
                    }
                    for action in actions
                ]
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"DB error: claim_due_actions: {e}")
                return None, []
            finally:
                db.close()

        if not claimed:
            return None, []
        return claim_id, claimed

    def _finish(self, action_id: int, status: str, error: Optional[str] = None) -> bool:
        db = self.session_factory()
        try:
            action = db.get(ScheduledAction, action_id)
            if not action:
                return False
            action.status = status
            action.last_error = error
            action.completed_at = datetime.utcnow()
            action.claim_id = None
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"DB error: finishing action {action_id}: {e}")
            return False
        finally:
            db.close()

    def mark_complete(self, action_id: int) -> bool:
        return self._finish(action_id, STATUS_COMPLETE)

    def mark_failed(self, action_id: int, error: str) -> bool:
        return self._finish(action_id, STATUS_FAILED, error)

    def release_claim(self, claim_id: str, action_ids: Optional[List[int]] = None) -> int:
        """Return claimed, unfinished actions to the pending state."""
        db = self.session_factory()
        try:
            query = db.query(ScheduledAction).filter(
                ScheduledAction.claim_id == claim_id,
                ScheduledAction.status == STATUS_IN_PROGRESS,
            )
            if action_ids is not None:
                query = query.filter(ScheduledAction.action_id.in_(action_ids))
            released = query.update(
                {
                    ScheduledAction.status: STATUS_PENDING,
                    ScheduledAction.claim_id: None,
                    ScheduledAction.claimed_at: None,
                },
                synchronize_session=False,
            )
            db.commit()
            return released
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"DB error: release_claim {claim_id}: {e}")
            return 0
        finally:
            db.close()

    def release_stale_claims(self, max_age_seconds: int, now: Optional[datetime] = None) -> int:
        """
        Release in-progress actions claimed more than max_age_seconds ago.

        Args:
            max_age_seconds: Claim age after which the owner is presumed dead
            now: Reference time (defaults to utcnow)

        Returns:
            Number of actions returned to pending
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(seconds=abs(int(max_age_seconds)))

        db = self.session_factory()
        try:
            released = (
                db.query(ScheduledAction)
                .filter(
                    ScheduledAction.status == STATUS_IN_PROGRESS,
                    ScheduledAction.claimed_at < cutoff,
                )
                .update(
                    {
                        ScheduledAction.status: STATUS_PENDING,
                        ScheduledAction.claim_id: None,
                        ScheduledAction.claimed_at: None,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"DB error: release_stale_claims: {e}")
            return 0
        finally:
            db.close()

        if released:
            logger.info(
                f"Released {released} stale action claims (older than {max_age_seconds}s, cutoff {cutoff.isoformat()})"
            )
        return released

    def get_action(self, action_id: int) -> Optional[Dict[str, Any]]:
        """Load an action as a dict (diagnostics)."""
        db = self.session_factory()
        try:
            action = db.get(ScheduledAction, action_id)
            if not action:
                return None
            return {
                "action_id": action.action_id,
                "hook": action.hook,
                "args": dict(action.args or {}),
                "group": action.group_name,
                "status": action.status,
                "scheduled_at": action.scheduled_at,
                "claim_id": action.claim_id,
                "attempts": action.attempts,
                "last_error": action.last_error,
            }
        except SQLAlchemyError as e:
            logger.error(f"DB error: get_action {action_id}: {e}")
            return None
        finally:
            db.close()
