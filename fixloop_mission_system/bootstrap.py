"""Composition Root - build the fixloop object graph.

This module is the only place where concrete implementations are
instantiated and wired together: code host, status checker, per-run
context, capability wiring, supervisor and run manager. Actors are
supplied by the host application.

Usage:
    from fixloop_mission_system.bootstrap import (
        create_code_host, create_root_logger, create_run_manager,
    )

    settings = get_settings()
    logger = create_root_logger(settings)
    code_host = create_code_host(settings, logger)
    manager = create_run_manager(
        settings, actors, code_host, logger=logger,
        issue_context_store=InMemoryIssueContextStore(),
    )

    record = await manager.start_analysis("Issue #42: crash on empty input", issue_number=42)
"""

import uuid
from typing import Mapping, Optional

from fixloop_avionics import DryRunCodeHost, GitHubCodeHost, GitHubStatusChecker
from fixloop_control_tower import (
    CancellationToken,
    RunContext,
    RunManager,
    RunRequest,
    create_run_context,
)
from fixloop_protocols import (
    ActorKind,
    ActorProtocol,
    CodeHostProtocol,
    IssueContextStoreProtocol,
    LoggerProtocol,
    ProgressSinkProtocol,
    RunKind,
    RunStoreProtocol,
    StatusCheckProtocol,
    WorkflowOutcome,
)
from fixloop_shared import (
    configure_logging,
    create_logger,
    get_current_logger,
    run_scope,
    set_current_logger,
)

from fixloop_mission_system.config import Settings
from fixloop_mission_system.orchestrator.capabilities import CapabilityWiring
from fixloop_mission_system.orchestrator.issue_context import IssueContextTools
from fixloop_mission_system.orchestrator.supervisor import Supervisor
from fixloop_mission_system.transcript import TranscriptCompactor


def create_root_logger(settings: Settings) -> LoggerProtocol:
    """Configure process logging from settings and install the root logger.

    The returned logger also becomes the context default, so components
    built without an explicit logger inherit it.
    """
    configure_logging(settings.log_level, json_output=settings.log_json)
    logger = create_logger("fixloop")
    set_current_logger(logger)
    settings.log_config(logger)
    return logger


def create_code_host(
    settings: Settings,
    logger: Optional[LoggerProtocol] = None,
) -> CodeHostProtocol:
    """GitHub code host from settings, wrapped for dry runs when enabled."""
    logger = logger or get_current_logger()
    if not (settings.github_owner and settings.github_repo):
        raise ValueError("GITHUB_OWNER and GITHUB_REPO must be set")

    host: CodeHostProtocol = GitHubCodeHost(
        settings.github_owner,
        settings.github_repo,
        token=settings.github_token,
        retry_policy=settings.retry_policy(),
        logger=logger,
        max_diff_chars=settings.max_diff_chars,
        api_url=settings.github_api_url,
    )
    if settings.dry_run:
        logger.info("dry_run_enabled", repo=f"{settings.github_owner}/{settings.github_repo}")
        host = DryRunCodeHost(host, logger)
    return host


def create_status_checker(code_host: CodeHostProtocol) -> Optional[StatusCheckProtocol]:
    """CI status checker for hosts that expose check runs."""
    if hasattr(code_host, "check_ci_status"):
        return GitHubStatusChecker(code_host)
    return None


def create_supervisor(
    settings: Settings,
    actors: Mapping[ActorKind, ActorProtocol],
    code_host: CodeHostProtocol,
    status_checker: Optional[StatusCheckProtocol] = None,
    progress_sink: Optional[ProgressSinkProtocol] = None,
    logger: Optional[LoggerProtocol] = None,
    run_id: Optional[str] = None,
    context: Optional[RunContext] = None,
    issue_context: Optional[IssueContextTools] = None,
) -> Supervisor:
    """Supervisor for one run, with fresh per-run handles unless given."""
    logger = logger or get_current_logger()
    if context is None:
        context = create_run_context(
            run_id or uuid.uuid4().hex[:12],
            settings.max_tool_calls_per_run,
            logger,
        )

    return Supervisor(
        actors,
        context,
        logger,
        capabilities=CapabilityWiring(code_host, context, logger, issue_context=issue_context),
        status_checker=status_checker,
        code_host=code_host,
        progress_sink=progress_sink,
        compactor=TranscriptCompactor(settings.compaction_config(), logger),
        max_iterations=settings.max_iterations,
        ci_poll_interval=settings.ci_poll_interval_seconds,
        ci_max_rechecks=settings.ci_max_rechecks,
    )


class SupervisorRunner:
    """WorkflowRunnerProtocol that runs each request on a fresh Supervisor.

    With an issue context store, actors get the issue note tools and every
    analysis run on a known issue leaves an outcome note when it ends.
    """

    def __init__(
        self,
        settings: Settings,
        actors: Mapping[ActorKind, ActorProtocol],
        code_host: CodeHostProtocol,
        status_checker: Optional[StatusCheckProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        issue_context_store: Optional[IssueContextStoreProtocol] = None,
    ):
        self._settings = settings
        self._actors = dict(actors)
        self._code_host = code_host
        self._status_checker = status_checker
        self._logger = logger or get_current_logger()
        self._issue_context_store = issue_context_store
        self._repo = f"{settings.github_owner or ''}/{settings.github_repo or ''}"

    async def execute(
        self,
        request: RunRequest,
        sink: ProgressSinkProtocol,
        cancel: CancellationToken,
    ) -> WorkflowOutcome:
        review = request.kind is RunKind.REVIEW
        call_limit = (
            self._settings.reviewer_max_tool_calls if review
            else self._settings.max_tool_calls_per_run
        )
        with run_scope(request.run_id, self._logger):
            context = create_run_context(request.run_id, call_limit, self._logger, cancel)
            notes = self._issue_notes(request)
            supervisor = create_supervisor(
                self._settings,
                self._actors,
                self._code_host,
                status_checker=self._status_checker,
                progress_sink=sink,
                logger=self._logger,
                context=context,
                issue_context=notes,
            )

            if review:
                return await supervisor.review(request.artifact_ref or "")
            outcome = await supervisor.run(
                request.seed,
                max_iterations=request.max_iterations,
                resume_from=request.resume,
            )
            if notes is not None and request.issue_number is not None:
                await self._record_outcome(notes, request, outcome)
            return outcome

    def _issue_notes(self, request: RunRequest) -> Optional[IssueContextTools]:
        if self._issue_context_store is None:
            return None
        return IssueContextTools(
            self._issue_context_store,
            self._repo,
            request.run_id,
            issue_number=request.issue_number,
            logger=self._logger,
        )

    async def _record_outcome(
        self,
        notes: IssueContextTools,
        request: RunRequest,
        outcome: WorkflowOutcome,
    ) -> None:
        summary = outcome.summary or outcome.error or outcome.final_state
        try:
            await notes.record_outcome(summary, iteration=outcome.iteration_count)
        except Exception as exc:
            # Best effort; the outcome is returned either way
            self._logger.warning(
                "outcome_save_failed",
                run_id=request.run_id,
                issue_number=request.issue_number,
                error=str(exc),
            )


def create_run_manager(
    settings: Settings,
    actors: Mapping[ActorKind, ActorProtocol],
    code_host: CodeHostProtocol,
    status_checker: Optional[StatusCheckProtocol] = None,
    store: Optional[RunStoreProtocol] = None,
    logger: Optional[LoggerProtocol] = None,
    issue_context_store: Optional[IssueContextStoreProtocol] = None,
) -> RunManager:
    """Run manager executing runs on SupervisorRunner."""
    logger = logger or get_current_logger()
    if status_checker is None:
        status_checker = create_status_checker(code_host)

    runner = SupervisorRunner(
        settings,
        actors,
        code_host,
        status_checker,
        logger,
        issue_context_store=issue_context_store,
    )
    return RunManager(
        logger,
        runner,
        store=store,
        default_max_iterations=settings.max_iterations,
    )


__all__ = [
    "SupervisorRunner",
    "create_code_host",
    "create_root_logger",
    "create_run_manager",
    "create_status_checker",
    "create_supervisor",
]
