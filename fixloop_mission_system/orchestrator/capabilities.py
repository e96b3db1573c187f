"""Per-actor capability wiring.

Builds the tool set each actor may call, wrapped in a fixed order:

    reads:  logging( breaker( cache( operation )))
    writes: logging( breaker( invalidation( operation )))
    notes:  logging( operation )

The cache sits inside the breaker so cache hits are free; logging sits
outside everything so it sees every call, hits included.
Issue notes stay in process and skip the breaker and the cache.
"""

from typing import Dict, Optional

from fixloop_control_tower import (
    RunContext,
    diff_key,
    list_files_key,
    read_file_key,
    wrap_with_breaker,
    wrap_with_cache,
    wrap_with_logging,
    wrap_write_with_invalidation,
)
from fixloop_control_tower.resources.cache import KeyExtractor
from fixloop_protocols import ActorKind, CodeHostProtocol, LoggerProtocol, Tool

from fixloop_mission_system.orchestrator.issue_context import IssueContextTools

Capabilities = Dict[str, Tool]


class CapabilityWiring:
    """Wires one code host into per-actor tool sets for one run.

    Usage:
        wiring = CapabilityWiring(code_host, context)
        tools = wiring.for_actor(ActorKind.CRITIQUE, iteration=2)
        await tools["read_file"](path="README.md", branch="main")
    """

    def __init__(
        self,
        code_host: CodeHostProtocol,
        context: RunContext,
        logger: Optional[LoggerProtocol] = None,
        issue_context: Optional[IssueContextTools] = None,
    ) -> None:
        self._host = code_host
        self._context = context
        self._notes = issue_context
        self._logger = (logger or context.logger).bind(component="capabilities")

    def for_actor(self, actor_kind: ActorKind, iteration: Optional[int] = None) -> Capabilities:
        if actor_kind is ActorKind.ANALYSIS:
            return self.analysis_tools()
        if actor_kind is ActorKind.IMPLEMENTATION:
            return self.implementation_tools()
        return self.critique_tools(iteration)

    def analysis_tools(self) -> Capabilities:
        return self._collect(ActorKind.ANALYSIS, [
            self._read(Tool("fetch_issue", self._host.fetch_issue, description="Fetch an issue")),
            self._read(Tool("list_files", self._host.list_files, description="List a directory"), list_files_key),
            self._read(Tool("read_file", self._host.read_file, description="Read a file"), read_file_key),
            self._read(Tool("fetch_sub_issues", self._host.fetch_sub_issues, description="List child issues")),
            self._read(Tool("get_parent_issue", self._host.get_parent_issue, description="Find the parent issue")),
            *self._note_tools(ActorKind.ANALYSIS, search=True),
        ])

    def implementation_tools(self) -> Capabilities:
        return self._collect(ActorKind.IMPLEMENTATION, [
            self._read(Tool("list_files", self._host.list_files), list_files_key),
            self._read(Tool("read_file", self._host.read_file), read_file_key),
            self._write(Tool("comment_on_issue", self._host.comment_on_issue, writes=True)),
            self._write(Tool("create_branch", self._host.create_branch, writes=True)),
            self._write(Tool("create_or_update_file", self._host.create_or_update_file, writes=True)),
            self._write(Tool("create_pull_request", self._host.create_pull_request, writes=True)),
            self._write(Tool("create_sub_issue", self._host.create_sub_issue, writes=True)),
            *self._note_tools(ActorKind.IMPLEMENTATION),
        ])

    def critique_tools(self, iteration: Optional[int] = None) -> Capabilities:
        host = self._host

        async def submit_review(pull_number: int, body: str) -> str:
            return await host.submit_review(pull_number=pull_number, body=body, iteration=iteration)

        return self._collect(ActorKind.CRITIQUE, [
            self._read(Tool("get_diff", self._host.get_diff, description="Fetch a proposal diff"), diff_key),
            self._read(Tool("list_files", self._host.list_files), list_files_key),
            self._read(Tool("read_file", self._host.read_file), read_file_key),
            self._write(Tool("submit_review", submit_review, writes=True)),
            *self._note_tools(ActorKind.CRITIQUE),
        ])

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _read(self, tool: Tool, extract_key: Optional[KeyExtractor] = None) -> Tool:
        if extract_key is not None:
            tool = wrap_with_cache(tool, self._context.cache, extract_key)
        return wrap_with_breaker(tool, self._context.budget)

    def _write(self, tool: Tool) -> Tool:
        tool = wrap_write_with_invalidation(tool, self._context.cache)
        return wrap_with_breaker(tool, self._context.budget)

    def _note_tools(self, actor_kind: ActorKind, search: bool = False) -> list:
        if self._notes is None:
            return []
        tools = [self._notes.save_tool(actor_kind), self._notes.get_tool()]
        if search:
            tools.append(self._notes.search_tool())
        return tools

    def _collect(self, actor_kind: ActorKind, tools: list) -> Capabilities:
        logger = self._logger.bind(actor=actor_kind.value)
        return {
            tool.name: wrap_with_logging(tool, logger, self._context.budget)
            for tool in tools
        }


__all__ = ["Capabilities", "CapabilityWiring"]
