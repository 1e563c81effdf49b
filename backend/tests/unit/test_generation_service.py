"""Unit tests for GenerationService."""

import threading
import uuid
from unittest.mock import MagicMock

import pytest

from uibattles.services.background import BackgroundRunner
from uibattles.services.errors import InvalidStateError, NotFoundError, UnauthorizedError
from uibattles.services.executor import GenerationExecutor
from uibattles.services.generation import INTERRUPTED_MESSAGE, GenerationService
from uibattles.services.store import GenerationStore

OWNER = "owner-1"


@pytest.fixture()
def service(store: GenerationStore, mock_runner: MagicMock) -> GenerationService:
    return GenerationService(store, MagicMock(spec=GenerationExecutor), mock_runner)


def _seed(store: GenerationStore, statuses: list[str], *, status: str = "completed") -> uuid.UUID:
    generation = store.insert_generation(name="Portfolio", prompt="a portfolio site", user_id=OWNER)
    items = store.insert_items(generation.id, [f"m/{n}" for n in range(len(statuses))])
    for item, item_status in zip(items, statuses):
        store.update_item(item.id, status=item_status)
    store.update_generation(generation.id, status=status)
    return generation.id


class TestEnqueue:
    def test_persists_pending_rows_and_starts_a_run(self, service: GenerationService, store: GenerationStore, mock_runner: MagicMock) -> None:
        gid = service.enqueue(
            prompt="a pricing page",
            name="Pricing",
            models=["openai/gpt-4o", "anthropic/claude-3.5-sonnet"],
            api_key="sk-test",
            user_id=OWNER,
        )

        generation = store.get_generation(gid)
        assert generation is not None
        assert generation.status == "pending"
        assert generation.user_id == OWNER
        items = store.get_items(gid)
        assert [i.model_id for i in items] == ["openai/gpt-4o", "anthropic/claude-3.5-sonnet"]
        assert all(i.status == "pending" for i in items)
        mock_runner.submit.assert_called_once()
        args = mock_runner.submit.call_args.args
        assert args[2:] == (gid, "sk-test")


class TestAbort:
    def test_sets_flag_for_owner(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["pending"], status="in_progress")

        service.abort(gid, OWNER)
        service.abort(gid, OWNER)

        assert store.abort_requested(gid) is True

    def test_unknown_generation(self, service: GenerationService) -> None:
        with pytest.raises(NotFoundError):
            service.abort(uuid.uuid4(), OWNER)

    def test_other_user(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["pending"], status="in_progress")

        with pytest.raises(UnauthorizedError):
            service.abort(gid, "someone-else")
        assert store.abort_requested(gid) is False

    @pytest.mark.parametrize("status", ["completed", "aborted"])
    def test_finished_generation(self, service: GenerationService, store: GenerationStore, status: str) -> None:
        gid = _seed(store, ["completed"], status=status)

        with pytest.raises(InvalidStateError, match="already completed or aborted"):
            service.abort(gid, OWNER)


class TestRetryItem:
    @pytest.mark.parametrize("status", ["error", "aborted"])
    def test_resets_item_and_starts_run(
        self, service: GenerationService, store: GenerationStore, mock_runner: MagicMock, status: str
    ) -> None:
        gid = _seed(store, [status])
        item = store.get_items(gid)[0]
        store.update_item(item.id, error="boom")

        service.retry_item(item.id, OWNER, "sk-test")

        reset = store.get_item(item.id)
        assert reset is not None
        assert reset.status == "pending"
        assert reset.error is None and reset.html is None
        assert reset.started_at is None and reset.completed_at is None
        mock_runner.submit.assert_called_once()

    @pytest.mark.parametrize("status", ["pending", "generating", "completed"])
    def test_rejects_other_statuses(self, service: GenerationService, store: GenerationStore, mock_runner: MagicMock, status: str) -> None:
        gid = _seed(store, [status])
        item = store.get_items(gid)[0]

        with pytest.raises(InvalidStateError, match="Can only retry failed or aborted items"):
            service.retry_item(item.id, OWNER, "sk-test")
        mock_runner.submit.assert_not_called()

    def test_unknown_item(self, service: GenerationService) -> None:
        with pytest.raises(NotFoundError, match="Item not found"):
            service.retry_item(uuid.uuid4(), OWNER, "sk-test")

    def test_other_user(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["error"])
        item = store.get_items(gid)[0]

        with pytest.raises(UnauthorizedError):
            service.retry_item(item.id, "someone-else", "sk-test")
        refreshed = store.get_item(item.id)
        assert refreshed is not None and refreshed.status == "error"

    def test_retry_during_a_running_generation_starts_another_run(
        self, service: GenerationService, store: GenerationStore, mock_runner: MagicMock
    ) -> None:
        gid = _seed(store, ["error", "pending"], status="in_progress")
        failed = store.get_items(gid)[0]

        service.retry_item(failed.id, OWNER, "sk-test")

        assert [i.status for i in store.get_items(gid)] == ["pending", "pending"]
        mock_runner.submit.assert_called_once()
        assert mock_runner.submit.call_args.args[2] == gid

    def test_retry_on_aborted_generation_aborts_again(self, store: GenerationStore) -> None:
        client = MagicMock()
        runner = BackgroundRunner()
        service = GenerationService(store, GenerationExecutor(store, lambda api_key: client), runner)
        gid = _seed(store, ["completed", "aborted"], status="aborted")
        store.set_abort_requested(gid)
        aborted = store.get_items(gid)[1]

        service.retry_item(aborted.id, OWNER, "sk-test").result(timeout=10)

        client.generate.assert_not_called()
        refreshed = store.get_item(aborted.id)
        assert refreshed is not None and refreshed.status == "aborted"
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "aborted"

    def test_retry_runs_only_the_reset_item(self, store: GenerationStore) -> None:
        client = MagicMock()
        client.generate.return_value = "<html>again</html>"
        service = GenerationService(store, GenerationExecutor(store, lambda api_key: client), BackgroundRunner())
        gid = _seed(store, ["completed", "error"])
        failed = store.get_items(gid)[1]

        service.retry_item(failed.id, OWNER, "sk-test").result(timeout=10)

        assert client.generate.call_count == 1
        statuses = [i.status for i in store.get_items(gid)]
        assert statuses == ["completed", "completed"]
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "completed"


class TestGetStatus:
    def test_returns_items_in_position_order(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["completed", "error", "pending"], status="in_progress")

        status = service.get_status(gid)

        assert status.status == "in_progress"
        assert [i.model_id for i in status.items] == ["m/0", "m/1", "m/2"]
        assert [i.status for i in status.items] == ["completed", "error", "pending"]
        assert status.abort_requested is False

    def test_owned_status_rejects_other_user(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["pending"], status="pending")

        with pytest.raises(UnauthorizedError):
            service.get_owned_status(gid, "someone-else")

    def test_unknown_generation(self, service: GenerationService) -> None:
        with pytest.raises(NotFoundError):
            service.get_status(uuid.uuid4())


class TestRecoverInterrupted:
    def test_settles_open_items_as_errors(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["completed", "generating", "pending"], status="in_progress")

        assert service.recover_interrupted() == 1

        items = store.get_items(gid)
        assert [i.status for i in items] == ["completed", "error", "error"]
        assert items[1].error == INTERRUPTED_MESSAGE
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "completed"

    def test_settles_abort_requested_runs_as_aborted(self, service: GenerationService, store: GenerationStore) -> None:
        gid = _seed(store, ["pending", "generating"], status="in_progress")
        store.set_abort_requested(gid)

        service.recover_interrupted()

        assert [i.status for i in store.get_items(gid)] == ["aborted", "aborted"]
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "aborted"

    def test_leaves_finished_generations_alone(self, service: GenerationService, store: GenerationStore) -> None:
        _seed(store, ["completed"], status="completed")

        assert service.recover_interrupted() == 0


class TestBackgroundRunner:
    def test_runs_function_and_resolves_future(self) -> None:
        runner = BackgroundRunner()
        done = threading.Event()

        runner.submit("job", done.set).result(timeout=5)

        assert done.is_set()
        assert runner.active_count() == 0

    def test_failure_is_set_on_future(self) -> None:
        def _fail() -> None:
            raise RuntimeError("boom")

        future = BackgroundRunner().submit("job", _fail)

        with pytest.raises(RuntimeError, match="boom"):
            future.result(timeout=5)

    def test_refuses_work_after_shutdown(self) -> None:
        runner = BackgroundRunner()
        runner.shutdown()

        with pytest.raises(RuntimeError):
            runner.submit("job", lambda: None)
