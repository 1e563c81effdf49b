"""Generation service: enqueue, abort, retry and status of generations."""

import logging
import uuid
from concurrent.futures import Future

from uibattles.db import utcnow
from uibattles.schemas.generation import GenerationItemStatus, GenerationStatus
from uibattles.services.background import BackgroundRunner
from uibattles.services.errors import InvalidStateError, NotFoundError, UnauthorizedError
from uibattles.services.executor import GenerationExecutor
from uibattles.services.store import GenerationStore

logger = logging.getLogger(__name__)

RETRYABLE_ITEM_STATUSES = ("error", "aborted")
FINISHED_GENERATION_STATUSES = ("completed", "aborted")
INTERRUPTED_MESSAGE = "Generation interrupted by a server restart"


class GenerationService:
    def __init__(
        self,
        store: GenerationStore,
        executor: GenerationExecutor,
        runner: BackgroundRunner,
    ) -> None:
        self._store = store
        self._executor = executor
        self._runner = runner

    def enqueue(self, *, prompt: str, name: str, models: list[str], api_key: str, user_id: str) -> uuid.UUID:
        """Persist a generation with one pending item per model and start its run.

        Returns as soon as the rows exist; the run continues in the background.
        """
        generation = self._store.insert_generation(name=name, prompt=prompt, user_id=user_id)
        self._store.insert_items(generation.id, models)
        logger.info("generation %s queued for %d model(s) by %s", generation.id, len(models), user_id)
        self._start_run(generation.id, api_key)
        return generation.id

    def abort(self, generation_id: uuid.UUID, user_id: str) -> None:
        """Request cooperative cancellation. Repeating the request is harmless."""
        generation = self._store.get_generation(generation_id)
        if generation is None:
            raise NotFoundError("Generation not found")
        if generation.user_id != user_id:
            raise UnauthorizedError("Unauthorized")
        if generation.status in FINISHED_GENERATION_STATUSES:
            raise InvalidStateError("Generation already completed or aborted")
        self._store.set_abort_requested(generation_id)
        logger.info("generation %s: abort requested", generation_id)

    def retry_item(self, item_id: uuid.UUID, user_id: str, api_key: str) -> Future[None]:
        """Reset a failed or aborted item to pending and resume its generation.

        The abort flag is left as it is: a generation that was aborted aborts the
        reset item again at the first batch check. A retry while the generation's
        run is still going starts a second run; items pending in both snapshots
        may then be generated twice, the later write wins.
        """
        item = self._store.get_item(item_id)
        if item is None:
            raise NotFoundError("Item not found")
        generation = self._store.get_generation(item.generation_id)
        if generation is None:
            raise NotFoundError("Generation not found")
        if generation.user_id != user_id:
            raise UnauthorizedError("Unauthorized")
        if item.status not in RETRYABLE_ITEM_STATUSES:
            raise InvalidStateError("Can only retry failed or aborted items")

        self._store.reset_item(item_id)
        logger.info("generation %s: item %s reset for retry", generation.id, item_id)
        return self._start_run(generation.id, api_key)

    def get_status(self, generation_id: uuid.UUID) -> GenerationStatus:
        generation = self._store.get_generation(generation_id)
        if generation is None:
            raise NotFoundError("Generation not found")
        items = self._store.get_items(generation_id)
        return GenerationStatus(
            id=generation.id,
            name=generation.name,
            prompt=generation.prompt,
            user_id=generation.user_id,
            status=generation.status,
            started_at=generation.started_at,
            completed_at=generation.completed_at,
            abort_requested=bool(generation.abort_requested),
            items=[GenerationItemStatus.model_validate(item) for item in items],
        )

    def get_owned_status(self, generation_id: uuid.UUID, user_id: str) -> GenerationStatus:
        status = self.get_status(generation_id)
        if status.user_id != user_id:
            raise UnauthorizedError("Unauthorized")
        return status

    def recover_interrupted(self) -> int:
        """Settle generations whose run died with the previous process.

        Items still pending or generating become aborted (abort was requested) or
        error; the generation then gets its terminal status by the usual rule.
        Returns the number of generations settled.
        """
        settled = 0
        for generation in self._store.list_unfinished_generations():
            now = utcnow()
            for item in self._store.get_items(generation.id):
                if item.status not in ("pending", "generating"):
                    continue
                if generation.abort_requested:
                    self._store.update_item(item.id, status="aborted", completed_at=now)
                else:
                    self._store.update_item(item.id, status="error", error=INTERRUPTED_MESSAGE, completed_at=now)
            items = self._store.get_items(generation.id)
            status = "aborted" if all(item.status == "aborted" for item in items) else "completed"
            self._store.update_generation(generation.id, status=status, completed_at=now)
            logger.warning("generation %s: interrupted run settled as %s", generation.id, status)
            settled += 1
        return settled

    def _start_run(self, generation_id: uuid.UUID, api_key: str) -> Future[None]:
        return self._runner.submit(f"generation-{generation_id}", self._executor.run, generation_id, api_key)
