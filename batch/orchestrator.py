"""
TaskOrchestrator - owns the single active batch run.

Lifecycle:
    start(prompt)        discover/list files, synthesize the template,
                         stop at PROCESSING
    continue_next()      dispatch exactly one pending sub-task and wait
                         for it; called once per file by the user
    toggle_enabled(id)   skip / un-skip a pending sub-task
    cancel()             stop scheduling; in-flight work is left alone
    reset()              forget the run

start(), continue_next() and toggle_enabled() share one processing
guard. start() and continue_next() never queue behind it: they return
False instead. toggle_enabled() waits for it.
"""

import asyncio
from pathlib import Path
from typing import Optional

from batch.events import VIEW_BATCH, VIEW_CONVERSATION, ProgressBroadcaster, ProgressObserver
from batch.extraction import extract_file_list
from batch.files import DEFAULT_IGNORE_FILE, IgnoreFilter, LocalFileLister, file_exists
from batch.models import (
    DISCOVERY_FILE_PATH,
    ParsedRules,
    RunConfig,
    RunProgress,
    RunStatus,
    SubTask,
    SubTaskStatus,
)
from batch.paths import extract_directory, get_filtered_files, validate_directory
from batch.rules import parse_rules
from batch.runtime import AgentTaskError, ConversationRuntime
from batch.templates import (
    CompletionTransport,
    TemplateMode,
    TemplateSynthesizer,
    build_discovery_instruction,
    placeholder_for,
)
from batch.waiter import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, CompletionWaiter
from shared.logging import correlation_context, get_logger

log = get_logger("batch", "orchestrator")


class BatchValidationError(Exception):
    """Input or discovery result that makes the run impossible."""


class RunSuperseded(Exception):
    """The run was cancelled or reset while a step was suspended."""


class TaskOrchestrator:
    """
    Drives one batch run at a time.

    Args:
        runtime: Executes instructions as conversation tasks
        transport: Completion transport for template synthesis
        cwd: Project root; every file path is relative to it
        observer: Receives progress snapshots and view hints
        file_lister: Directory listing (default: LocalFileLister)
        ignore_filter: Ignore rules (default: IgnoreFilter on cwd)
        config: The "batch" config section
        api_config: Request settings passed to the transport
        options: Per-call transport options (e.g. language)
    """

    def __init__(
        self,
        runtime: ConversationRuntime,
        transport: CompletionTransport,
        cwd: Path,
        observer: Optional[ProgressObserver] = None,
        file_lister: Optional[LocalFileLister] = None,
        ignore_filter: Optional[IgnoreFilter] = None,
        config: Optional[dict] = None,
        api_config: Optional[dict] = None,
        options: Optional[dict] = None,
    ):
        self.runtime = runtime
        self.cwd = Path(cwd)
        self.config = config or {}
        self.observer = observer or ProgressBroadcaster()
        self.file_lister = file_lister or LocalFileLister()
        self.ignore_filter = ignore_filter or IgnoreFilter(
            self.cwd, self.config.get("ignore_file", DEFAULT_IGNORE_FILE)
        )
        self.file_limit = self.config.get("file_limit", 1000)

        self.waiter = CompletionWaiter(
            poll_interval=self.config.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL),
            timeout=self.config.get("task_timeout_seconds", DEFAULT_TIMEOUT),
        )

        retry = self.config.get("retry", {})
        self.synthesizer = TemplateSynthesizer(
            transport,
            api_config=api_config,
            options=options,
            max_retries=retry.get("max_retries", 3),
            initial_delay=retry.get("initial_delay_seconds", 1.0),
        )

        self.run: Optional[RunConfig] = None
        self.progress: Optional[RunProgress] = None

        self._guard = asyncio.Lock()
        # Bumped by start() and reset(); a suspended step compares it to
        # notice that its run is gone.
        self._generation = 0
        self._current_index = -1
        self._phase = "idle"

    # --- State ---

    @property
    def is_active(self) -> bool:
        """A run is being processed or waits for continuation."""
        if self._guard.locked():
            return True
        return self.progress is not None and not self.progress.status.is_terminal

    def query_state(self) -> dict:
        """Snapshot of the current run. Contains copies only."""
        run = self.run
        return {
            "active": self.is_active,
            "phase": self._phase,
            "progress": self.progress.to_dict() if self.progress else None,
            "sub_tasks": [t.to_dict() for t in run.sub_tasks] if run else [],
            "run": run.to_dict() if run else None,
        }

    def _is_current(self, generation: int) -> bool:
        return (
            generation == self._generation
            and self.run is not None
            and self.progress is not None
            and self.progress.status != RunStatus.CANCELLED
        )

    def _ensure_current(self, generation: int) -> None:
        if not self._is_current(generation):
            raise RunSuperseded()

    # --- Notifications ---

    async def _publish(self, status: RunStatus, message: str,
                       current_sub_task: Optional[SubTask] = None) -> None:
        run = self.run
        file_tasks = run.file_sub_tasks if run else []
        progress = RunProgress(
            status=status,
            current_index=self._current_index,
            total_count=len(file_tasks),
            completed_count=sum(1 for t in file_tasks if t.status == SubTaskStatus.COMPLETED),
            failed_count=sum(1 for t in file_tasks if t.status == SubTaskStatus.FAILED),
            message=message,
            current_sub_task=current_sub_task.copy() if current_sub_task else None,
        )
        self.progress = progress

        try:
            await self.observer.on_progress(progress, [t.copy() for t in run.sub_tasks] if run else [])
        except Exception as e:
            log.exception(e, "batch.orchestrator.observer_failed",
                          {"phase": self._phase, "status": status.value})

    async def _route(self, view: str) -> None:
        try:
            await self.observer.on_route(view)
        except Exception as e:
            log.exception(e, "batch.orchestrator.observer_failed",
                          {"phase": self._phase, "view": view})

    # --- start ---

    async def start(self, prompt: str) -> bool:
        """
        Begin a new run. Returns False if a run is already active.

        A terminal run is replaced. Failures end the run as FAILED and
        are never raised.
        """
        if self.is_active:
            log.warning("batch.orchestrator.start_rejected", reason="run_active")
            return False

        async with self._guard:
            self._generation += 1
            generation = self._generation
            self.run = RunConfig(prompt=prompt)
            self.progress = RunProgress(status=RunStatus.PARSING, message="Starting...")
            self._current_index = -1
            self._phase = "parsing"

            with correlation_context(session_id=self.run.run_id):
                try:
                    if not prompt or not prompt.strip():
                        raise BatchValidationError("Prompt is empty")

                    rules = parse_rules(prompt)
                    log.info("batch.orchestrator.run_started",
                             run_id=self.run.run_id,
                             mode="rule" if rules.is_rule_mode else "legacy")

                    if rules.is_rule_mode:
                        await self._start_rule_mode(rules, generation)
                    else:
                        await self._start_legacy_mode(prompt, generation)

                except RunSuperseded:
                    log.info("batch.orchestrator.start_superseded", phase=self._phase)
                except BatchValidationError as e:
                    log.warning("batch.orchestrator.validation_failed",
                                phase=self._phase, error=str(e))
                    await self._fail(generation, str(e))
                except Exception as e:
                    log.exception(e, "batch.orchestrator.start_failed", {"phase": self._phase})
                    await self._fail(generation, f"Unexpected error: {e}")
        return True

    async def _start_rule_mode(self, rules: ParsedRules, generation: int) -> None:
        run = self.run
        run.is_rule_mode = True
        run.discovery_rule = rules.discovery_rule
        run.processing_rule = rules.processing_rule

        discovery = SubTask(file_path=DISCOVERY_FILE_PATH)
        discovery.mark_running()
        run.sub_tasks.append(discovery)

        self._phase = "discovery"
        await self._publish(RunStatus.DISCOVERING_FILES,
                            "Analysing project structure to discover files...", discovery)
        self._ensure_current(generation)

        instruction = build_discovery_instruction(rules.discovery_rule, self.cwd.as_posix())
        handle = await self.runtime.create_task(instruction, [])
        discovery.external_task_id = handle.id
        log.info("batch.orchestrator.discovery_dispatched",
                 task_id=handle.id, rule=rules.discovery_rule)
        self._ensure_current(generation)

        await self._publish(RunStatus.DISCOVERING_FILES,
                            "Analysing project structure to discover files...", discovery)
        await self._route(VIEW_CONVERSATION)
        await self.runtime.focus(handle.id)
        await self.waiter.wait(handle)
        self._ensure_current(generation)

        error = handle.error()
        if error:
            raise BatchValidationError(f"Discovery task failed: {error}")

        self._phase = "parsing"
        await self._publish(RunStatus.PARSING, "Parsing file list...", discovery)
        self._ensure_current(generation)

        response = handle.last_assistant_text()
        log.debug("batch.orchestrator.discovery_response", response=response)
        candidates = extract_file_list(response)
        if not candidates:
            raise BatchValidationError(
                "Could not extract a file list from the discovery task. "
                "Make sure it returns a JSON array of file paths."
            )

        valid_files = []
        for candidate in candidates:
            path = candidate[1:] if candidate.startswith("/") else candidate
            if file_exists(self.cwd / path):
                valid_files.append(path)
            else:
                log.info("batch.orchestrator.file_missing", file_path=path)

        if not valid_files:
            raise BatchValidationError(
                f"None of the {len(candidates)} discovered files exist"
            )

        discovery.mark_completed()
        log.info("batch.orchestrator.discovery_completed",
                 candidates=len(candidates),
                 valid=len(valid_files),
                 duration_seconds=round(discovery.ended_at - discovery.started_at, 2))

        run.files = valid_files
        run.sub_tasks.extend(SubTask(file_path=path) for path in valid_files)

        self._phase = "template"
        await self._publish(RunStatus.GENERATING_TEMPLATE, "Generating instruction template...")
        self._ensure_current(generation)
        await self._route(VIEW_BATCH)

        template = await self.synthesizer.synthesize(
            rules.processing_rule, valid_files, TemplateMode.RULE
        )
        self._ensure_current(generation)
        run.instruction_template = template

        self._phase = "processing"
        await self._publish(RunStatus.PROCESSING,
                            f"Ready to process {len(valid_files)} files")

    async def _start_legacy_mode(self, prompt: str, generation: int) -> None:
        run = self.run

        self._phase = "parsing"
        await self._publish(RunStatus.PARSING, "Parsing prompt...")
        self._ensure_current(generation)

        path_info = extract_directory(prompt, self.cwd)
        effective_prompt = path_info.cleaned_prompt or prompt
        run.target_directory = path_info.directory

        if path_info.has_path and not validate_directory(path_info.directory, self.cwd):
            raise BatchValidationError(f"Directory not found: {path_info.directory}")

        files = await asyncio.to_thread(
            get_filtered_files,
            path_info.directory,
            self.cwd,
            self.file_lister,
            self.ignore_filter,
            self.file_limit,
        )
        self._ensure_current(generation)
        if not files:
            raise BatchValidationError(
                f"No files found in {path_info.directory or 'the project root'}"
            )

        run.files = files
        run.sub_tasks.extend(SubTask(file_path=path) for path in files)

        self._phase = "template"
        await self._publish(RunStatus.GENERATING_TEMPLATE, "Generating instruction template...")
        self._ensure_current(generation)

        template = await self.synthesizer.synthesize(effective_prompt, files, TemplateMode.LEGACY)
        self._ensure_current(generation)
        run.instruction_template = template

        self._phase = "processing"
        await self._publish(RunStatus.PROCESSING, f"Ready to process {len(files)} files")
        await self._route(VIEW_BATCH)

    async def _fail(self, generation: int, message: str) -> None:
        if not self._is_current(generation):
            return

        discovery = self.run.discovery_sub_task
        if discovery is not None and discovery.status == SubTaskStatus.RUNNING:
            discovery.mark_failed(message)

        failed_phase = self._phase
        self._phase = "failed"
        log.error("batch.orchestrator.run_failed", phase=failed_phase, error=message)
        await self._publish(RunStatus.FAILED, f"Run failed: {message}")
        await self._route(VIEW_BATCH)

    # --- continue_next ---

    def render_instruction(self, file_path: str) -> str:
        """Instruction for one file: the template with its placeholder filled in."""
        run = self.run
        mention = f"@/{file_path}"
        template = run.instruction_template or ""

        placeholder = placeholder_for(TemplateMode.RULE if run.is_rule_mode else TemplateMode.LEGACY)

        if run.is_rule_mode or placeholder in template:
            return template.replace(placeholder, mention)
        return f"{template}\n\n{mention}".strip()

    async def continue_next(self) -> bool:
        """
        Dispatch the next enabled pending sub-task and wait for it.

        Returns False, doing nothing, when there is no run, the run is
        terminal, or a step is already in flight.
        """
        if self.run is None or self.progress is None or self.progress.status.is_terminal:
            log.info("batch.orchestrator.continue_ignored", reason="no_active_run")
            return False
        if self._guard.locked():
            log.info("batch.orchestrator.continue_ignored", reason="in_flight")
            return False

        async with self._guard:
            run = self.run
            generation = self._generation
            with correlation_context(session_id=run.run_id):
                try:
                    await self._continue(run, generation)
                except RunSuperseded:
                    log.info("batch.orchestrator.continue_superseded")
                except Exception as e:
                    log.exception(e, "batch.orchestrator.continue_failed", {"phase": self._phase})
                    await self._fail(generation, f"Unexpected error: {e}")
        return True

    async def _continue(self, run: RunConfig, generation: int) -> None:
        file_tasks = run.file_sub_tasks
        position, sub_task = next(
            ((i, t) for i, t in enumerate(file_tasks) if t.is_schedulable),
            (None, None),
        )

        if sub_task is None:
            await self._complete(generation)
            return

        self._current_index = position
        self._phase = "processing"
        enabled_total = sum(1 for t in file_tasks if t.enabled)
        number = sum(1 for t in file_tasks if t.status == SubTaskStatus.COMPLETED) + 1

        sub_task.mark_running()
        log.info("batch.orchestrator.dispatch",
                 sub_task_id=sub_task.id,
                 file_path=sub_task.file_path,
                 position=position)
        await self._publish(RunStatus.PROCESSING,
                            f"Processing {sub_task.file_path} ({number}/{enabled_total})",
                            sub_task)
        self._ensure_current(generation)

        try:
            await self._dispatch(sub_task, generation)
        except RunSuperseded:
            raise
        except Exception as e:
            if sub_task.status == SubTaskStatus.RUNNING:
                sub_task.mark_failed(str(e) or type(e).__name__)
            log.exception(e, "batch.orchestrator.sub_task_failed",
                          {"phase": "processing", "file_path": sub_task.file_path})
        else:
            if sub_task.status == SubTaskStatus.RUNNING:
                sub_task.mark_completed()
                log.info("batch.orchestrator.sub_task_completed",
                         sub_task_id=sub_task.id,
                         file_path=sub_task.file_path,
                         duration_seconds=round(sub_task.ended_at - sub_task.started_at, 2))

        self._ensure_current(generation)
        await self._publish(RunStatus.PROCESSING,
                            f"Finished {number}/{enabled_total} files",
                            sub_task)
        self._ensure_current(generation)

        if any(t.is_schedulable for t in file_tasks):
            await self._route(VIEW_BATCH)
        else:
            await self._complete(generation)

    async def _dispatch(self, sub_task: SubTask, generation: int) -> None:
        instruction = self.render_instruction(sub_task.file_path)
        handle = await self.runtime.create_task(instruction, [])
        sub_task.external_task_id = handle.id

        # Cancelled runs still wait for the task they already started.
        if self._is_current(generation):
            await self._publish(RunStatus.PROCESSING,
                                f"Processing {sub_task.file_path} (task {handle.id})",
                                sub_task)
            await self._route(VIEW_CONVERSATION)
        await self.runtime.focus(handle.id)
        await self.waiter.wait(handle)

        error = handle.error()
        if error:
            raise AgentTaskError(handle.id, error)

    async def _complete(self, generation: int) -> None:
        self._ensure_current(generation)
        self._phase = "completed"
        log.info("batch.orchestrator.run_completed",
                 completed=sum(1 for t in self.run.file_sub_tasks
                               if t.status == SubTaskStatus.COMPLETED),
                 failed=sum(1 for t in self.run.file_sub_tasks
                            if t.status == SubTaskStatus.FAILED))
        await self._publish(RunStatus.COMPLETED, "All tasks completed")
        await self._route(VIEW_BATCH)

    # --- toggle / cancel / reset ---

    async def toggle_enabled(self, sub_task_id: str) -> bool:
        """
        Skip or un-skip a sub-task. Waits for any in-flight step.

        PENDING+enabled -> CANCELLED+disabled; CANCELLED -> PENDING+enabled.
        Anything else is a no-op returning False.
        """
        async with self._guard:
            run = self.run
            if run is None or self.progress is None or self.progress.status.is_terminal:
                return False

            sub_task = run.find_sub_task(sub_task_id)
            if sub_task is None or sub_task is run.discovery_sub_task:
                return False

            if sub_task.status == SubTaskStatus.PENDING and sub_task.enabled:
                sub_task.disable()
                message = f"Skipped {sub_task.file_path}"
            elif sub_task.status in (SubTaskStatus.PENDING, SubTaskStatus.CANCELLED):
                sub_task.enable()
                message = f"Re-enabled {sub_task.file_path}"
            else:
                log.debug("batch.orchestrator.toggle_ignored",
                          sub_task_id=sub_task_id, status=sub_task.status)
                return False

            with correlation_context(session_id=run.run_id):
                log.info("batch.orchestrator.toggled",
                         sub_task_id=sub_task.id,
                         file_path=sub_task.file_path,
                         enabled=sub_task.enabled)
                await self._publish(self.progress.status, message)
            return True

    async def cancel(self) -> bool:
        """
        Stop scheduling. Pending and running sub-tasks become CANCELLED.

        Does not wait for, or interrupt, a task that is already running.
        """
        run = self.run
        if run is None or self.progress is None or self.progress.status.is_terminal:
            return False

        with correlation_context(session_id=run.run_id):
            for sub_task in run.sub_tasks:
                if sub_task.status in (SubTaskStatus.PENDING, SubTaskStatus.RUNNING):
                    sub_task.mark_cancelled()

            log.info("batch.orchestrator.cancelled", phase=self._phase)
            self._phase = "cancelled"
            await self._publish(RunStatus.CANCELLED, "Run cancelled")
            await self._route(VIEW_BATCH)
        return True

    def reset(self) -> None:
        """Drop the run and return to idle."""
        if self.run is not None:
            log.info("batch.orchestrator.reset", run_id=self.run.run_id)
        self._generation += 1
        self.run = None
        self.progress = None
        self._current_index = -1
        self._phase = "idle"
