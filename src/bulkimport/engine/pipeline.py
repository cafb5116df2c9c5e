# src/bulkimport/engine/pipeline.py
"""Import pipeline: lock, split, process bunches, finalize.

State machine:
    IDLE -> LOCKING -> SPLITTING -> PROCESSING -> FINALIZING -> COMPLETED
    LOCKING -> FAILED when the lock is not acquired. A fatal error once the
    lock is held goes through FINALIZING to FAILED from any earlier state.

Failure handling:
- Row-level failures become validation messages; the row keeps flowing.
- BunchIOError aborts the affected bunch only and degrades the run. Output
  the consumer wrote for that bunch is registered with "partial": true.
- Any other BulkImportError (or unexpected exception) is fatal: the run is
  finalized as failed, the lock is released and the error is re-raised.

The run lock is released on every exit path once it was acquired. A run
that could not acquire the lock never touches the registry or the lock
file of the run that holds it.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any

import structlog

from bulkimport.contracts.enums import BunchStatus, PipelineState, RunStatus
from bulkimport.contracts.errors import BunchIOError, RunAlreadyLockedError
from bulkimport.contracts.keys import RegistryKeys
from bulkimport.contracts.records import Bunch, BunchResult, RunResult, ValidationMessage
from bulkimport.core.config import ImportSettings
from bulkimport.core.lock import RunLock
from bulkimport.core.logging import bind_bunch_context, bind_run_context
from bulkimport.core.registry import StatusRegistry, create_registry
from bulkimport.core.splitter import BunchSplitter
from bulkimport.core.subject import RowCursor
from bulkimport.observers.chain import ObserverChain
from bulkimport.plugins.manager import PluginManager
from bulkimport.renderers.validations import JsonFileRenderer
from bulkimport.writers.base import RowConsumer
from bulkimport.writers.csv_writer import BunchCsvWriter

logger = structlog.get_logger(__name__)

ChainFactory = Callable[[], ObserverChain]
ConsumerFactory = Callable[[Bunch], RowConsumer]

_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.LOCKING}),
    PipelineState.LOCKING: frozenset({PipelineState.SPLITTING, PipelineState.FINALIZING, PipelineState.FAILED}),
    PipelineState.SPLITTING: frozenset({PipelineState.PROCESSING, PipelineState.FINALIZING}),
    PipelineState.PROCESSING: frozenset({PipelineState.FINALIZING}),
    PipelineState.FINALIZING: frozenset({PipelineState.COMPLETED, PipelineState.FAILED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class ImportPipeline:
    """Runs one import over a source file.

    All collaborators are injected; build_pipeline() wires the defaults
    from settings. A pipeline instance runs at most once.

    Usage:
        pipeline = build_pipeline(settings)
        result = pipeline.run()
    """

    def __init__(
        self,
        settings: ImportSettings,
        *,
        registry: StatusRegistry,
        lock: RunLock,
        splitter: BunchSplitter,
        chain_factory: ChainFactory,
        renderer: JsonFileRenderer | None = None,
        consumer_factory: ConsumerFactory | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._lock = lock
        self._splitter = splitter
        self._chain_factory = chain_factory
        self._renderer = renderer if renderer is not None else JsonFileRenderer(registry)
        self._consumer_factory = consumer_factory
        self._state = PipelineState.IDLE
        self._state_history: list[PipelineState] = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def state_history(self) -> list[PipelineState]:
        return list(self._state_history)

    def _transition(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Invalid pipeline transition {self._state} -> {new_state}")
        logger.info("Pipeline state changed", previous=str(self._state), state=str(new_state))
        self._state = new_state
        self._state_history.append(new_state)

    def _merge_status(self, partial: Mapping[str, Any]) -> None:
        if self._state.is_terminal:
            raise RuntimeError(f"Registry is read-only once the pipeline is {self._state}")
        self._registry.merge_attributes_recursive(RegistryKeys.STATUS, partial)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, serial: str | None = None) -> RunResult:
        """Execute the import.

        Args:
            serial: Run token (defaults to a new uuid4 hex string)

        Returns:
            RunResult with status COMPLETED or DEGRADED

        Raises:
            RunAlreadyLockedError: If another run holds the lock
            FatalImportError: On any other fatal error, after the run was
                recorded as failed and the lock released
        """
        if self._state != PipelineState.IDLE:
            raise RuntimeError("ImportPipeline.run() can only be called once")
        serial = serial if serial is not None else uuid.uuid4().hex
        with bind_run_context(serial):
            return self._run(serial)

    def _run(self, serial: str) -> RunResult:
        self._transition(PipelineState.LOCKING)
        try:
            self._lock.acquire(serial)
        except RunAlreadyLockedError as e:
            self._transition(PipelineState.FAILED)
            logger.error("Import already running", active_serials=e.active_serials)
            raise
        except Exception:
            self._transition(PipelineState.FAILED)
            raise

        try:
            self._registry.set_attribute(
                RegistryKeys.STATUS,
                {
                    RegistryKeys.SERIAL: serial,
                    RegistryKeys.STATE: str(RunStatus.RUNNING),
                    RegistryKeys.TARGET_DIRECTORY: str(self._settings.target_dir),
                    RegistryKeys.FILES: {},
                    RegistryKeys.VALIDATION_MESSAGES: [],
                    RegistryKeys.BUNCHES: [],
                    RegistryKeys.FAILED_BUNCHES: [],
                },
            )

            self._transition(PipelineState.SPLITTING)
            bunches = self._splitter.split(
                self._settings.source_file,
                self._settings.bunch_dir,
                self._settings.split.max_rows_per_bunch,
            )
            self._merge_status({RegistryKeys.BUNCHES: [bunch.to_dict() for bunch in bunches]})

            self._transition(PipelineState.PROCESSING)
            bunch_results = self._process_bunches(bunches)

            self._transition(PipelineState.FINALIZING)
            self._render_validations()
            failed = any(r.status == BunchStatus.FAILED for r in bunch_results)
            status = RunStatus.DEGRADED if failed else RunStatus.COMPLETED
            self._merge_status({RegistryKeys.STATE: str(status)})
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._lock.release(serial)

        self._transition(PipelineState.COMPLETED)
        result = RunResult(
            serial=serial,
            status=status,
            bunch_results=bunch_results,
            artifacts=[a for r in bunch_results for a in r.artifacts],
        )
        logger.info(
            "Import finished",
            status=str(status),
            bunches=len(bunch_results),
            failed_bunches=len(result.failed_bunches),
            rows=result.rows_processed,
            invalid_rows=result.rows_invalid,
        )
        return result

    def _fail(self, error: Exception) -> None:
        """Finalize a run that hit a fatal error."""
        if self._state != PipelineState.FINALIZING:
            self._transition(PipelineState.FINALIZING)
            try:
                self._render_validations()
            except Exception:
                logger.exception("Rendering validation messages of failed run failed")
        self._merge_status(
            {
                RegistryKeys.STATE: str(RunStatus.FAILED),
                RegistryKeys.ERROR: f"{type(error).__name__}: {error}",
            }
        )
        self._transition(PipelineState.FAILED)
        logger.error("Import failed", error_type=type(error).__name__, error=str(error))

    def _render_validations(self) -> None:
        status = self._registry.get_attribute(RegistryKeys.STATUS) or {}
        messages = [ValidationMessage.from_dict(m) for m in status.get(RegistryKeys.VALIDATION_MESSAGES, [])]
        self._renderer.render(messages)

    # ------------------------------------------------------------------
    # Bunch processing
    # ------------------------------------------------------------------

    def _process_bunches(self, bunches: Sequence[Bunch]) -> list[BunchResult]:
        max_workers = self._settings.concurrency.max_workers
        if max_workers == 1 or len(bunches) <= 1:
            return [self._process_bunch(bunch) for bunch in bunches]

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bulkimport-bunch") as pool:
            # Each worker runs in a copy of the caller's context so the bound
            # run serial shows up in worker log lines.
            futures: list[Future[BunchResult]] = [
                pool.submit(contextvars.copy_context().run, self._process_bunch, bunch) for bunch in bunches
            ]
            try:
                return [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def _process_bunch(self, bunch: Bunch) -> BunchResult:
        """Run every row of one bunch through a fresh observer chain.

        Only BunchIOError is contained here; fatal errors propagate.
        """
        result = BunchResult(bunch=bunch, status=BunchStatus.COMPLETED)
        with bind_bunch_context(bunch):
            try:
                self._consume_rows(bunch, result)
            except BunchIOError as e:
                result.status = BunchStatus.FAILED
                result.error = str(e)
                result.artifacts = [replace(a, metadata={**a.metadata, "partial": True}) for a in result.artifacts]
                logger.error("Bunch failed", path=str(bunch.path), error=str(e))
            finally:
                self._record_bunch(result)

            logger.info(
                "Processed bunch",
                status=str(result.status),
                rows=result.rows_processed,
                invalid_rows=result.rows_invalid,
            )
        return result

    def _consume_rows(self, bunch: Bunch, result: BunchResult) -> None:
        chain = self._chain_factory()
        consumer = self._consumer_factory(bunch) if self._consumer_factory is not None else None
        with RowCursor(bunch, self._settings.csv, debug_mode=self._settings.debug_mode) as cursor:
            if consumer is not None:
                consumer.open(cursor)
            try:
                for _ in cursor.rows():
                    outcome = chain.process(cursor)
                    result.rows_processed += 1
                    if not outcome.valid:
                        result.rows_invalid += 1
                        result.messages.extend(outcome.messages)
                    if consumer is not None:
                        consumer.consume(cursor, outcome.row)
            finally:
                # Runs on BunchIOError too; the caller flags these artifacts as partial
                if consumer is not None:
                    result.artifacts.extend(consumer.close(cursor))

    def _record_bunch(self, result: BunchResult) -> None:
        partial: dict[str, Any] = {}
        if result.messages:
            partial[RegistryKeys.VALIDATION_MESSAGES] = [m.to_dict() for m in result.messages]
        files: dict[str, Any] = {}
        for artifact in result.artifacts:
            files.update(artifact.registry_entry())
        if files:
            partial[RegistryKeys.FILES] = files
        if result.status == BunchStatus.FAILED:
            partial[RegistryKeys.FAILED_BUNCHES] = [
                {"index": result.bunch.index, "path": str(result.bunch.path), "error": result.error}
            ]
        if partial:
            self._merge_status(partial)


def build_pipeline(
    settings: ImportSettings,
    *,
    plugin_manager: PluginManager | None = None,
    registry: StatusRegistry | None = None,
) -> ImportPipeline:
    """Wire a pipeline with the default collaborators for settings.

    The observer chain is built once here so unknown observer names and
    invalid options fail before the run lock is taken.

    Raises:
        PipelineConfigurationError: If an observer name is unknown
        PluginConfigError: If observer options are invalid
    """
    if plugin_manager is None:
        plugin_manager = PluginManager()
        plugin_manager.register_builtin_plugins()
    plugin_manager.build_chain(settings.observers)

    if registry is None:
        registry = create_registry(settings.registry.backend, settings.registry.path)

    consumer_factory: ConsumerFactory | None = None
    if settings.write_bunch_output:

        def consumer_factory(bunch: Bunch) -> RowConsumer:
            return BunchCsvWriter(settings.target_dir, settings.csv)

    return ImportPipeline(
        settings,
        registry=registry,
        lock=RunLock(settings.pid_filename),
        splitter=BunchSplitter(settings.csv),
        chain_factory=lambda: plugin_manager.build_chain(settings.observers),
        renderer=JsonFileRenderer(registry),
        consumer_factory=consumer_factory,
    )
