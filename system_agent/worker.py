"""Background worker that runs deferred actions."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from system_agent.config import settings
from system_agent.services.action_queue import DatabaseActionQueue

logger = logging.getLogger(__name__)


class ActionRunner:
    """
    Claims due actions and invokes their hook callbacks.

    Up to concurrent_batches batches run in parallel. Each batch claims up to
    batch_size actions and runs them one after another until time_limit
    seconds have passed; whatever is left is released for the next batch.
    """

    def __init__(
        self,
        queue: DatabaseActionQueue,
        concurrent_batches: Optional[int] = None,
        batch_size: Optional[int] = None,
        time_limit: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ):
        """Initialize the runner; unset tuning values come from settings."""
        self.queue = queue
        self.concurrent_batches = max(1, concurrent_batches or settings.QUEUE_CONCURRENT_BATCHES)
        self.batch_size = max(1, batch_size or settings.QUEUE_BATCH_SIZE)
        self.time_limit = max(1, time_limit or settings.QUEUE_TIME_LIMIT)
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL
        self.stale_claim_max_age = settings.STALE_CLAIM_MAX_AGE
        self.stale_claim_check_interval = settings.STALE_CLAIM_CHECK_INTERVAL

        self.hooks: Dict[str, Callable[..., Any]] = {}
        self._last_cleanup: Optional[float] = None

    def register_hook(self, hook: str, callback: Callable[..., Any]) -> None:
        """Route actions for hook to callback(**args)."""
        self.hooks[hook] = callback

    def process_action(self, action: Dict[str, Any]) -> bool:
        """Run one claimed action and record its outcome."""
        action_id = action["action_id"]
        hook = action["hook"]

        callback = self.hooks.get(hook)
        if callback is None:
            logger.error(f"No callback registered for hook '{hook}' (action {action_id})")
            self.queue.mark_failed(action_id, f"No callback registered for hook: {hook}")
            return False

        try:
            callback(**action["args"])
        except Exception as e:
            logger.error(f"Action {action_id} ({hook}) failed: {e}", exc_info=True)
            self.queue.mark_failed(action_id, str(e))
            return False

        self.queue.mark_complete(action_id)
        return True

    def run_batch(self) -> int:
        """Claim and run one batch. Returns the number of actions run."""
        claim_id, actions = self.queue.claim_due_actions(self.batch_size)
        if not actions:
            return 0

        started = time.monotonic()
        processed = 0

        for index, action in enumerate(actions):
            if time.monotonic() - started >= self.time_limit:
                remaining = [a["action_id"] for a in actions[index:]]
                released = self.queue.release_claim(claim_id, remaining)
                logger.info(f"Batch time limit reached, released {released} actions")
                break

            self.process_action(action)
            processed += 1

        return processed

    def run_pending(self) -> int:
        """Run up to concurrent_batches batches. Returns actions run."""
        if self.concurrent_batches == 1:
            return self.run_batch()

        with ThreadPoolExecutor(max_workers=self.concurrent_batches) as pool:
            futures = [pool.submit(self.run_batch) for _ in range(self.concurrent_batches)]
            return sum(f.result() for f in futures)

    def cleanup_stale_claims(self, force: bool = False) -> int:
        """Release stale claims, at most once per check interval unless forced."""
        now = time.monotonic()
        if not force and self._last_cleanup is not None:
            if now - self._last_cleanup < self.stale_claim_check_interval:
                return 0

        self._last_cleanup = now
        return self.queue.release_stale_claims(self.stale_claim_max_age)

    def run(self, stop_event=None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        logger.info(
            f"Action runner started (batches={self.concurrent_batches}, "
            f"batch_size={self.batch_size}, time_limit={self.time_limit}s)"
        )

        while True:
            # Check if stop signal received
            if stop_event and stop_event.is_set():
                logger.info("Worker stop signal received")
                break

            try:
                self.cleanup_stale_claims()
                processed = self.run_pending()
            except KeyboardInterrupt:
                logger.info("Worker shutting down")
                break
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                processed = 0

            if not processed:
                if stop_event:
                    stop_event.wait(self.poll_interval)
                else:
                    time.sleep(self.poll_interval)


def worker_loop(stop_event=None, container=None):
    """Run worker loop (for use as background thread).

    Args:
        stop_event: Optional threading.Event to signal worker to stop
        container: Wired services; built from settings when omitted
    """
    from system_agent.bootstrap import build_container

    container = container or build_container()
    container.runner.run(stop_event=stop_event)


def main():
    """Entry point for standalone worker."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    worker_loop()


if __name__ == "__main__":
    main()
