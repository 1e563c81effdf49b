"""Fan-out executor: drives every pending item of a generation to a terminal status."""

import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError

from uibattles.db import utcnow
from uibattles.models.generation_item import GenerationItem
from uibattles.services.failures import clean_html, extract_error_message
from uibattles.services.openrouter import OpenRouterClient
from uibattles.services.store import GenerationStore

logger = logging.getLogger(__name__)

MAX_CONCURRENT = 3
MODEL_TIMEOUT_SECONDS = 120.0
TIMEOUT_MESSAGE = "Generation timed out (2 minute limit)"

SYSTEM_PROMPT = """Generate a complete, single-file HTML document.
You may use:
- HTML5 elements, CSS3 (flexbox, grid, animations, transitions)
- JavaScript (vanilla, no frameworks)
- Google Fonts via @import or <link>
- Inline SVG images (as data URIs or inline)

You must NOT:
- Use external CSS/JS libraries (no Tailwind CDN, React, Vue, etc.)
- Reference external resources except Google Fonts
- Make network requests
- Use data: URLs except for inline SVGs
- Generate incomplete or placeholder content

Output ONLY the raw HTML code, no explanations or markdown."""


class ModelTimeoutError(Exception):
    """The model call did not finish within the per-item deadline."""


class GenerationExecutor:
    """Runs a generation's pending items in batches of *max_concurrent*.

    The pending set is read once when the run starts. Between batches the abort
    flag is re-read; inside a batch every item runs in parallel and the next batch
    waits until all of them have settled.
    """

    def __init__(
        self,
        store: GenerationStore,
        client_factory: Callable[[str], OpenRouterClient] = OpenRouterClient,
        *,
        max_concurrent: int = MAX_CONCURRENT,
        timeout_seconds: float = MODEL_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._client_factory = client_factory
        self._max_concurrent = max_concurrent
        self._timeout_seconds = timeout_seconds

    def run(self, generation_id: uuid.UUID, api_key: str) -> None:
        """Process the generation. Never raises: failures are logged and the run stops."""
        try:
            self._process(generation_id, api_key)
        except Exception:
            logger.exception("generation %s: run failed, left in its last status", generation_id)

    def _process(self, generation_id: uuid.UUID, api_key: str) -> None:
        self._store.update_generation(generation_id, status="in_progress", started_at=utcnow())
        client = self._client_factory(api_key)

        # Snapshot: items reset to pending after this read are left to a later run.
        pending = [item for item in self._store.get_items(generation_id) if item.status == "pending"]
        logger.info("generation %s: %d pending item(s)", generation_id, len(pending))

        with ThreadPoolExecutor(
            max_workers=self._max_concurrent, thread_name_prefix=f"generation-{generation_id}"
        ) as pool:
            for start in range(0, len(pending), self._max_concurrent):
                if self._store.abort_requested(generation_id):
                    self._abort(generation_id)
                    return
                batch = pending[start : start + self._max_concurrent]
                logger.info(
                    "generation %s: starting batch %d (%d item(s))",
                    generation_id,
                    start // self._max_concurrent + 1,
                    len(batch),
                )
                futures = {pool.submit(self.run_item, item, client): item for item in batch}
                wait(futures)
                for future, item in futures.items():
                    exc = future.exception()
                    if exc is not None:
                        logger.error("generation %s: item %s did not settle: %s", generation_id, item.id, exc)

        final_items = self._store.get_items(generation_id)
        status = "aborted" if all(item.status == "aborted" for item in final_items) else "completed"
        self._store.update_generation(generation_id, status=status, completed_at=utcnow())
        logger.info("generation %s: finished as %s", generation_id, status)

    def _abort(self, generation_id: uuid.UUID) -> None:
        """Abort every item still pending or generating, then the generation."""
        now = utcnow()
        for item in self._store.get_items(generation_id):
            if item.status in ("pending", "generating"):
                self._store.update_item(item.id, status="aborted", completed_at=now)
        self._store.update_generation(generation_id, status="aborted", completed_at=now)
        logger.info("generation %s: aborted", generation_id)

    def run_item(self, item: GenerationItem, client: OpenRouterClient) -> None:
        """Run one item to completed, error or aborted."""
        self._store.update_item(item.id, status="generating", started_at=utcnow())
        try:
            generation = self._store.get_generation(item.generation_id)
            if generation is None:
                raise LookupError(f"Generation {item.generation_id} not found")
            if generation.abort_requested:
                self._store.update_item(item.id, status="aborted", completed_at=utcnow())
                return

            text = self._call_with_timeout(client, item.model_id, generation.prompt)
            self._store.update_item(item.id, status="completed", html=clean_html(text), completed_at=utcnow())
        except ModelTimeoutError:
            logger.error("model %s timed out for item %s", item.model_id, item.id)
            self._store.update_item(item.id, status="error", error=TIMEOUT_MESSAGE, completed_at=utcnow())
        except Exception as exc:
            message = extract_error_message(exc)
            logger.error("model %s failed for item %s: %s (%s)", item.model_id, item.id, message, type(exc).__name__)
            self._store.update_item(item.id, status="error", error=message, completed_at=utcnow())

    def _call_with_timeout(self, client: OpenRouterClient, model_id: str, prompt: str) -> str:
        """Call the model on its own thread and give up after the per-item deadline.

        On timeout the cancel event stops further retries; a request already on the
        wire finishes in the background and its result is discarded.
        """
        cancel = threading.Event()
        future: Future[str] = Future()

        def _call() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(client.generate(model_id, SYSTEM_PROMPT, prompt, cancel))
            except Exception as exc:
                future.set_exception(exc)

        threading.Thread(target=_call, name=f"model-call-{model_id}", daemon=True).start()
        try:
            return future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError as exc:
            cancel.set()
            raise ModelTimeoutError(f"{model_id} exceeded {self._timeout_seconds:.0f}s") from exc
