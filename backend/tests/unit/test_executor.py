"""Unit tests for GenerationExecutor, run against a real SQLite store."""

import threading
import uuid
from collections.abc import Callable

from uibattles.services.executor import TIMEOUT_MESSAGE, GenerationExecutor
from uibattles.services.openrouter import APICallError, GenerationCancelledError
from uibattles.services.store import GenerationStore


class FakeClient:
    """Scripted stand-in for OpenRouterClient keyed by model id."""

    def __init__(self, behaviours: dict[str, Callable[[threading.Event | None], str]]) -> None:
        self._behaviours = behaviours
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def generate(
        self,
        model_id: str,
        system_prompt: str,
        user_prompt: str,
        cancel: threading.Event | None = None,
    ) -> str:
        with self._lock:
            self.calls.append(model_id)
        return self._behaviours[model_id](cancel)


def _html(body: str) -> Callable[[threading.Event | None], str]:
    return lambda cancel: f"<html><body>{body}</body></html>"


def _make_generation(store: GenerationStore, models: list[str]) -> uuid.UUID:
    generation = store.insert_generation(name="Landing page", prompt="a landing page for a bakery", user_id="user-1")
    store.insert_items(generation.id, models)
    return generation.id


def _executor(store: GenerationStore, client: FakeClient, **kwargs: float) -> GenerationExecutor:
    return GenerationExecutor(store, lambda api_key: client, **kwargs)  # type: ignore[arg-type,return-value]


class TestGenerationExecutorRun:
    def test_mixed_outcomes_settle_each_item_and_complete_the_job(self, store: GenerationStore) -> None:
        def _hang(cancel: threading.Event | None) -> str:
            assert cancel is not None
            cancel.wait(5)
            raise GenerationCancelledError("cancelled")

        def _rate_limited(cancel: threading.Event | None) -> str:
            raise APICallError(
                "Too Many Requests",
                status_code=429,
                response_body='{"error":{"message":"rate limited"}}',
            )

        client = FakeClient(
            {
                "a/fast": lambda cancel: "```html\n<html><body>A</body></html>\n```",
                "b/slow": _hang,
                "c/limited": _rate_limited,
            }
        )
        gid = _make_generation(store, ["a/fast", "b/slow", "c/limited"])

        _executor(store, client, timeout_seconds=0.2).run(gid, "sk-test")

        items = store.get_items(gid)
        assert [i.status for i in items] == ["completed", "error", "error"]
        assert items[0].html == "<html><body>A</body></html>"
        assert items[1].error == TIMEOUT_MESSAGE
        assert items[2].error == "rate limited"
        generation = store.get_generation(gid)
        assert generation is not None
        assert generation.status == "completed"
        assert generation.started_at is not None
        assert generation.completed_at is not None

    def test_output_and_error_are_exclusive(self, store: GenerationStore) -> None:
        def _boom(cancel: threading.Event | None) -> str:
            raise RuntimeError("provider exploded")

        client = FakeClient({"ok/model": _html("ok"), "bad/model": _boom})
        gid = _make_generation(store, ["ok/model", "bad/model"])

        _executor(store, client).run(gid, "sk-test")

        ok, bad = store.get_items(gid)
        assert ok.status == "completed" and ok.html and ok.error is None
        assert bad.status == "error" and bad.error == "provider exploded" and bad.html is None
        assert ok.started_at is not None and ok.completed_at is not None

    def test_all_errors_still_complete_the_job(self, store: GenerationStore) -> None:
        def _fail(cancel: threading.Event | None) -> str:
            raise APICallError("Unauthorized", status_code=401, response_body="{}")

        client = FakeClient({"a/one": _fail, "b/two": _fail})
        gid = _make_generation(store, ["a/one", "b/two"])

        _executor(store, client).run(gid, "sk-test")

        assert [i.status for i in store.get_items(gid)] == ["error", "error"]
        assert [i.error for i in store.get_items(gid)] == ["Unauthorized", "Unauthorized"]
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "completed"

    def test_abort_before_start_aborts_everything(self, store: GenerationStore) -> None:
        client = FakeClient({"a/one": _html("1"), "b/two": _html("2")})
        gid = _make_generation(store, ["a/one", "b/two"])
        store.set_abort_requested(gid)

        _executor(store, client).run(gid, "sk-test")

        assert client.calls == []
        assert [i.status for i in store.get_items(gid)] == ["aborted", "aborted"]
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "aborted"

    def test_abort_between_batches_keeps_first_batch_results(self, session_factory) -> None:  # type: ignore[no-untyped-def]
        class AbortAfterFirstBatch(GenerationStore):
            checks = 0

            def abort_requested(self, generation_id: uuid.UUID) -> bool:
                self.checks += 1
                if self.checks == 2:
                    self.set_abort_requested(generation_id)
                return super().abort_requested(generation_id)

        store = AbortAfterFirstBatch(session_factory)
        models = ["m/1", "m/2", "m/3", "m/4", "m/5"]
        client = FakeClient({m: _html(m) for m in models})
        gid = _make_generation(store, models)

        _executor(store, client).run(gid, "sk-test")

        assert sorted(client.calls) == ["m/1", "m/2", "m/3"]
        assert [i.status for i in store.get_items(gid)] == [
            "completed",
            "completed",
            "completed",
            "aborted",
            "aborted",
        ]
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "aborted"

    def test_abort_after_batch_check_stops_item_before_calling_model(self, session_factory) -> None:  # type: ignore[no-untyped-def]
        class AbortRightAfterBatchCheck(GenerationStore):
            def abort_requested(self, generation_id: uuid.UUID) -> bool:
                requested = super().abort_requested(generation_id)
                self.set_abort_requested(generation_id)
                return requested

        store = AbortRightAfterBatchCheck(session_factory)
        client = FakeClient({"a/one": _html("1")})
        gid = _make_generation(store, ["a/one"])

        _executor(store, client).run(gid, "sk-test")

        assert client.calls == []
        (item,) = store.get_items(gid)
        assert item.status == "aborted"
        assert item.completed_at is not None
        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "aborted"

    def test_batches_never_exceed_max_concurrent(self, store: GenerationStore) -> None:
        lock = threading.Lock()
        running = 0
        peak = 0

        def _tracked(cancel: threading.Event | None) -> str:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            threading.Event().wait(0.05)
            with lock:
                running -= 1
            return "<html></html>"

        models = [f"m/{n}" for n in range(5)]
        client = FakeClient({m: _tracked for m in models})
        gid = _make_generation(store, models)

        _executor(store, client, max_concurrent=2).run(gid, "sk-test")

        assert peak <= 2
        assert all(i.status == "completed" for i in store.get_items(gid))

    def test_only_items_pending_at_start_are_processed(self, store: GenerationStore) -> None:
        gid = _make_generation(store, ["a/one", "b/two"])
        first, second = store.get_items(gid)
        store.update_item(second.id, status="error", error="earlier failure")

        def _reset_sibling(cancel: threading.Event | None) -> str:
            store.reset_item(second.id)
            return "<html></html>"

        client = FakeClient({"a/one": _reset_sibling, "b/two": _html("two")})

        _executor(store, client).run(gid, "sk-test")

        assert client.calls == ["a/one"]
        statuses = {i.id: i.status for i in store.get_items(gid)}
        assert statuses[first.id] == "completed"
        assert statuses[second.id] == "pending"

    def test_client_construction_failure_leaves_job_in_progress(self, store: GenerationStore) -> None:
        gid = _make_generation(store, ["a/one"])

        def _factory(api_key: str) -> FakeClient:
            raise ValueError("api_key is required")

        GenerationExecutor(store, _factory).run(gid, "")  # type: ignore[arg-type]

        generation = store.get_generation(gid)
        assert generation is not None and generation.status == "in_progress"
        assert store.get_items(gid)[0].status == "pending"
