"""
HTTP API for the batch orchestrator.

Flask runs in a daemon thread; every command is handed to the event loop
that owns the orchestrator, so orchestrator state is only touched from
that loop.
"""

import asyncio
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from batch.events import ProgressBroadcaster
from batch.orchestrator import TaskOrchestrator
from shared.logging import get_logger

log = get_logger("api", "server")

COMMAND_TIMEOUT = 10.0


class CommandDispatcher:
    """
    Thread-safe command surface over a TaskOrchestrator.

    Long-running commands (start, continue, toggle) are launched as tasks
    on the loop; the caller learns immediately whether they were accepted.
    """

    def __init__(self, orchestrator: TaskOrchestrator, loop: asyncio.AbstractEventLoop):
        self.orchestrator = orchestrator
        self.loop = loop
        self._tasks: set[asyncio.Task] = set()

    def _call(self, coro):
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=COMMAND_TIMEOUT)

    async def _launch(self, coro) -> tuple[bool, bool]:
        """
        Run `coro` as a task and give it one loop step.

        Returns (finished, result). One step is enough for start() and
        continue_next() to either take the processing guard or return
        False.
        """
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        await asyncio.sleep(0)
        if task.done():
            return True, bool(task.result())
        return False, True

    # Each method below runs on the loop.

    async def _start(self, prompt: str) -> bool:
        if self.orchestrator.is_active:
            return False
        _, accepted = await self._launch(self.orchestrator.start(prompt))
        return accepted

    async def _continue(self) -> bool:
        _, accepted = await self._launch(self.orchestrator.continue_next())
        return accepted

    async def _toggle(self, sub_task_id: str) -> Optional[bool]:
        run = self.orchestrator.run
        if run is None or run.find_sub_task(sub_task_id) is None:
            return None
        finished, changed = await self._launch(self.orchestrator.toggle_enabled(sub_task_id))
        # Unfinished means queued behind an in-flight step
        return changed if finished else True

    async def _reset(self) -> None:
        self.orchestrator.reset()

    async def _state(self) -> dict:
        return self.orchestrator.query_state()

    # Thread-side entry points

    def start(self, prompt: str) -> bool:
        return self._call(self._start(prompt))

    def continue_next(self) -> bool:
        return self._call(self._continue())

    def toggle(self, sub_task_id: str) -> Optional[bool]:
        """None if the sub-task does not exist."""
        return self._call(self._toggle(sub_task_id))

    def cancel(self) -> bool:
        return self._call(self.orchestrator.cancel())

    def reset(self) -> None:
        self._call(self._reset())

    def state(self) -> dict:
        return self._call(self._state())


def create_app(dispatcher: CommandDispatcher) -> Flask:
    """Create the Flask app bound to `dispatcher`."""
    app = Flask(__name__)

    def loop_errors(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except FutureTimeoutError:
                log.error("api.command_timeout", endpoint=request.path)
                return jsonify({"error": "Command timed out"}), 504
        return decorated

    @app.route("/health")
    def health():
        running = dispatcher.loop.is_running()
        return jsonify({"status": "healthy" if running else "stopped", "running": running})

    @app.route("/state")
    @loop_errors
    def state():
        """Current run, progress snapshot and sub-tasks."""
        return jsonify(dispatcher.state())

    @app.route("/events")
    def events():
        observer = dispatcher.orchestrator.observer
        if not isinstance(observer, ProgressBroadcaster):
            return jsonify({"error": "Event history not available"}), 404
        since = request.args.get("since", 0, type=int)
        return jsonify({
            "events": observer.events(since),
            "next": observer.next_seq,
            "view": observer.view,
        })

    @app.route("/start", methods=["POST"])
    @loop_errors
    def start():
        data = request.get_json(silent=True) or {}
        prompt = data.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            return jsonify({"error": "prompt required"}), 400

        if not dispatcher.start(prompt):
            return jsonify({"error": "A run is already active"}), 409

        log.info("api.start_accepted", prompt_length=len(prompt))
        return jsonify({"accepted": True}), 202

    @app.route("/continue", methods=["POST"])
    @loop_errors
    def continue_next():
        if not dispatcher.continue_next():
            return jsonify({"error": "Nothing to continue"}), 409
        return jsonify({"accepted": True}), 202

    @app.route("/subtasks/<sub_task_id>/toggle", methods=["POST"])
    @loop_errors
    def toggle(sub_task_id: str):
        result = dispatcher.toggle(sub_task_id)
        if result is None:
            return jsonify({"error": "Sub-task not found"}), 404
        if not result:
            return jsonify({"error": "Sub-task cannot be toggled"}), 409
        return jsonify({"accepted": True, "sub_task_id": sub_task_id}), 202

    @app.route("/cancel", methods=["POST"])
    @loop_errors
    def cancel():
        cancelled = dispatcher.cancel()
        return jsonify({"success": True, "cancelled": cancelled})

    @app.route("/reset", methods=["POST"])
    @loop_errors
    def reset():
        dispatcher.reset()
        return jsonify({"success": True})

    return app


def run_api_server(dispatcher: CommandDispatcher, host: str = "127.0.0.1", port: int = 8770):
    """Run the Flask API server (blocking)."""
    app = create_app(dispatcher)
    app.run(host=host, port=port, threaded=True, use_reloader=False)


async def run_with_api(
    orchestrator: TaskOrchestrator,
    host: str = "127.0.0.1",
    port: int = 8770,
    stop: Optional[asyncio.Event] = None,
):
    """
    Serve the API next to the orchestrator until `stop` is set.

    Must be awaited on the loop that owns the orchestrator.
    """
    dispatcher = CommandDispatcher(orchestrator, asyncio.get_running_loop())
    stop = stop or asyncio.Event()

    api_thread = threading.Thread(
        target=run_api_server,
        kwargs={"dispatcher": dispatcher, "host": host, "port": port},
        daemon=True,
    )
    api_thread.start()
    log.info("api.server_started", host=host, port=port)

    await stop.wait()
    log.info("api.server_stopping")
    return dispatcher
