"""Approval gate: authorization consulted before any tool executes."""

import asyncio
import dataclasses
import weakref
from typing import Any, Mapping, Optional, Union

from loguru import logger

from ..audit import AuditEvent, AuditLogger
from ..config import Config
from ..errors import ExecutionDenied, HookExecutionError, PersistenceWarning
from ..hooks import HookDispatcher, HookName, call_maybe_async
from ..tooling import Tool
from .approval import (
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalResponse,
    ApprovalScope,
    ApprovalState,
    ApprovalStrategy,
    _outer_task_cancelling,
)
from .store import AutoApprovedTool, DecisionStore


class ApprovalGate:
    """
    Stateful authorization pipeline for tool calls.

    Per invocation:
        REQUESTED -> CHECK_GLOBAL -> {APPROVED_AUTO | CHECK_SESSION}
                  -> {APPROVED_AUTO | PROMPT}
                  -> {APPROVED_ONCE | APPROVED_SESSION | APPROVED_GLOBAL | DENIED}

    Fail-safe behavior:
    - Store read failures count as "no decision" (the strategy is asked)
    - Store write failures are logged once; the current decision stands
    - Strategy errors, timeouts and cancelled approvals deny
    """

    def __init__(
        self,
        store: DecisionStore,
        strategy: ApprovalStrategy,
        timeout: Optional[float] = None,
        hooks: Optional[HookDispatcher] = None,
        audit: Optional[AuditLogger] = None,
    ):
        """
        Initialize approval gate.

        Args:
            store: Persisted decisions
            strategy: Decision maker for undecided calls
            timeout: Seconds to wait for the strategy (Config.APPROVAL_TIMEOUT
                when None, 0 waits forever)
            hooks: Dispatcher for approval:before_request/after_request
            audit: Optional audit trail
        """
        self._store = store
        self._strategy = strategy
        self._timeout = Config.APPROVAL_TIMEOUT if timeout is None else timeout
        self._hooks = hooks
        self._audit = audit
        # Entries vanish once no coroutine holds or waits on the lock.
        self._write_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    @property
    def store(self) -> DecisionStore:
        return self._store

    @property
    def strategy(self) -> ApprovalStrategy:
        return self._strategy

    def _audit_log(self, event: AuditEvent, **fields: Any) -> None:
        if self._audit is not None:
            self._audit.log(event, **fields)

    # ========================================================================
    # Decision pipeline
    # ========================================================================

    async def should_approve(
        self,
        tool_name: str,
        params: dict[str, Any],
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Decide whether a tool invocation may run."""
        outcome = await self.evaluate(tool_name, params, session_id, context)
        return outcome.approved

    async def evaluate(
        self,
        tool_name: str,
        params: dict[str, Any],
        session_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> ApprovalOutcome:
        """
        Run the approval state machine for one invocation attempt.

        Returns:
            ApprovalOutcome with the terminal state and effective scope
        """
        logger.debug(f"Approval {ApprovalState.REQUESTED.value}: {tool_name} (session={session_id})")

        if await self._check(ApprovalState.CHECK_GLOBAL, tool_name, None):
            logger.info(f"Tool auto-approved (global): {tool_name}")
            self._audit_log(
                AuditEvent.APPROVAL_AUTO, tool_name=tool_name, session_id=session_id, scope="global"
            )
            return ApprovalOutcome(
                tool_name=tool_name,
                state=ApprovalState.APPROVED_AUTO,
                session_id=session_id,
                scope=ApprovalScope.GLOBAL,
            )

        if session_id and await self._check(ApprovalState.CHECK_SESSION, tool_name, session_id):
            logger.info(f"Tool auto-approved (session {session_id}): {tool_name}")
            self._audit_log(
                AuditEvent.APPROVAL_AUTO, tool_name=tool_name, session_id=session_id, scope="session"
            )
            return ApprovalOutcome(
                tool_name=tool_name,
                state=ApprovalState.APPROVED_AUTO,
                session_id=session_id,
                scope=ApprovalScope.SESSION,
            )

        request = ApprovalRequest(
            tool_name=tool_name, params=params, context=context, session_id=session_id
        )
        return await self._prompt(request)

    async def _check(
        self, state: ApprovalState, tool_name: str, session_id: Optional[str]
    ) -> bool:
        try:
            if session_id is None:
                return await self._store.is_globally_approved(tool_name)
            return await self._store.is_session_approved(tool_name, session_id)
        except Exception as e:
            warning = e if isinstance(e, PersistenceWarning) else PersistenceWarning(str(e))
            logger.warning(
                f"Decision store read failed during {state.value} for {tool_name}: {warning}"
            )
            self._audit_log(
                AuditEvent.PERSISTENCE_FAILED,
                tool_name=tool_name,
                session_id=session_id,
                operation=state.value,
                error=str(warning),
            )
            return False

    async def _prompt(self, request: ApprovalRequest) -> ApprovalOutcome:
        logger.info(f"Requesting approval for {request.tool_name} ({request.request_id})")
        self._audit_log(
            AuditEvent.APPROVAL_REQUESTED,
            tool_name=request.tool_name,
            session_id=request.session_id,
            request_id=request.request_id,
            params=request.params,
        )
        await self._raise_hook(
            HookName.APPROVAL_BEFORE_REQUEST,
            {"tool_name": request.tool_name, "params": request.params, "request_id": request.request_id},
        )

        response = await self._ask_strategy(request)
        outcome = await self._apply_response(request, response)

        await self._raise_hook(
            HookName.APPROVAL_AFTER_REQUEST,
            {
                "tool_name": request.tool_name,
                "params": request.params,
                "request_id": request.request_id,
                "approved": outcome.approved,
                "state": outcome.state.value,
            },
        )
        return outcome

    async def _ask_strategy(self, request: ApprovalRequest) -> ApprovalResponse:
        try:
            if self._timeout and self._timeout > 0:
                response = await asyncio.wait_for(
                    self._strategy.request_approval(request), timeout=self._timeout
                )
            else:
                response = await self._strategy.request_approval(request)
        except asyncio.TimeoutError:
            logger.warning(
                f"Approval request {request.request_id} for {request.tool_name} timed out"
            )
            return ApprovalResponse.deny("Approval timed out")
        except asyncio.CancelledError:
            if _outer_task_cancelling():
                raise
            logger.info(f"Approval request {request.request_id} cancelled")
            return ApprovalResponse.deny("Approval cancelled")
        except Exception as e:
            logger.error(
                f"Approval strategy {self._strategy.get_name()} failed for "
                f"{request.tool_name}: {e}"
            )
            return ApprovalResponse.deny(f"Approval strategy error: {e}")

        if not isinstance(response, ApprovalResponse):
            logger.error(
                f"Approval strategy {self._strategy.get_name()} returned "
                f"{type(response).__name__}; denying"
            )
            return ApprovalResponse.deny("Invalid approval response")
        return response

    async def _apply_response(
        self, request: ApprovalRequest, response: ApprovalResponse
    ) -> ApprovalOutcome:
        tool_name, session_id = request.tool_name, request.session_id

        def outcome(state: ApprovalState, scope: Optional[ApprovalScope]) -> ApprovalOutcome:
            return ApprovalOutcome(
                tool_name=tool_name,
                state=state,
                session_id=session_id,
                scope=scope,
                request_id=request.request_id,
                reason=response.reason,
            )

        if not response.approved:
            logger.info(f"Tool execution denied: {tool_name}")
            self._audit_log(
                AuditEvent.APPROVAL_DENIED,
                tool_name=tool_name,
                session_id=session_id,
                request_id=request.request_id,
                reason=response.reason,
            )
            return outcome(ApprovalState.DENIED, None)

        scope = response.scope or ApprovalScope.ONCE
        if scope == ApprovalScope.SESSION and not session_id:
            # Never widen a session grant to global when no session exists.
            logger.warning(
                f"Session approval for {tool_name} without a session id; treating as once"
            )
            scope = ApprovalScope.ONCE

        self._audit_log(
            AuditEvent.APPROVAL_GRANTED,
            tool_name=tool_name,
            session_id=session_id,
            request_id=request.request_id,
            scope=scope.value,
        )

        if scope == ApprovalScope.ONCE:
            return outcome(ApprovalState.APPROVED_ONCE, scope)

        if scope == ApprovalScope.SESSION:
            await self._persist(tool_name, session_id)
            return outcome(ApprovalState.APPROVED_SESSION, scope)

        await self._persist(tool_name, None)
        return outcome(ApprovalState.APPROVED_GLOBAL, scope)

    def _write_lock(self, tool_name: str, session_id: Optional[str]) -> asyncio.Lock:
        key = (tool_name, session_id)
        lock = self._write_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._write_locks[key] = lock
        return lock

    async def _persist(self, tool_name: str, session_id: Optional[str]) -> None:
        """Write a decision, serialized per (tool, session) key. Not retried."""
        scope = "session" if session_id else "global"
        async with self._write_lock(tool_name, session_id):
            try:
                record_id = await self._store.add_auto_approved_tool(tool_name, session_id)
            except Exception as e:
                warning = e if isinstance(e, PersistenceWarning) else PersistenceWarning(str(e))
                logger.warning(
                    f"Failed to save {scope} auto-approved tool {tool_name}: {warning}"
                )
                self._audit_log(
                    AuditEvent.PERSISTENCE_FAILED,
                    tool_name=tool_name,
                    session_id=session_id,
                    operation="persist",
                    error=str(warning),
                )
                return

        logger.info(f"Added to {scope} auto-approved tools: {tool_name}")
        self._audit_log(
            AuditEvent.DECISION_PERSISTED,
            tool_name=tool_name,
            session_id=session_id,
            scope=scope,
            record_id=record_id,
        )

    async def _raise_hook(self, hook_name: HookName, payload: Mapping[str, Any]) -> None:
        if self._hooks is None:
            return
        try:
            await self._hooks.execute(hook_name, payload)
        except HookExecutionError as e:
            logger.error(f"Hook {hook_name.value} failed during approval: {e}")

    # ========================================================================
    # Tool wrapping
    # ========================================================================

    def wrap_tool(self, tool: Tool) -> Tool:
        """
        Return a copy of `tool` whose execute is gated by approval.

        Name, description, schema and metadata are unchanged. On denial the
        original body never runs and ExecutionDenied is raised.
        """
        original = tool.execute

        async def execute(params: dict[str, Any], call_context: Optional[dict[str, Any]] = None) -> Any:
            session_id = (call_context or {}).get("session_id")
            approved = await self.should_approve(
                tool.name, params, session_id, {"type": "tool-execution"}
            )
            if not approved:
                raise ExecutionDenied(tool.name, session_id)
            return await call_maybe_async(original, params, call_context)

        return dataclasses.replace(tool, execute=execute)

    def wrap_tools(self, tools: Mapping[str, Tool]) -> dict[str, Tool]:
        return {name: self.wrap_tool(tool) for name, tool in tools.items()}

    # ========================================================================
    # Audit / introspection
    # ========================================================================

    async def get_auto_approved_tools(
        self,
        session_id: Optional[str] = None,
        scope: Optional[Union[ApprovalScope, str]] = None,
    ) -> list[AutoApprovedTool]:
        """
        Persisted decisions for audit.

        Args:
            session_id: Session whose decisions to include
            scope: "global", "session", or None for both

        Returns:
            Global list, session list, or global followed by session
        """
        scope = ApprovalScope(scope) if scope is not None else None
        try:
            if scope == ApprovalScope.GLOBAL:
                return await self._store.get_auto_approved_tools()
            if scope == ApprovalScope.SESSION:
                if not session_id:
                    return []
                return await self._store.get_auto_approved_tools(session_id)

            records = await self._store.get_auto_approved_tools()
            if session_id:
                records = records + await self._store.get_auto_approved_tools(session_id)
            return records
        except Exception as e:
            logger.warning(f"Failed to load auto-approved tools: {e}")
            return []

    async def remove_auto_approved_tool(
        self,
        tool_name: str,
        session_id: Optional[str] = None,
        scope: Optional[Union[ApprovalScope, str]] = None,
    ) -> None:
        """
        Revoke persisted decisions for a tool.

        A session-scoped removal never touches the global decision and vice
        versa. With no scope, both are attempted. Absent decisions are a
        no-op.

        Raises:
            PersistenceWarning: If the store could not be updated
        """
        scope = ApprovalScope(scope) if scope is not None else None
        targets: list[Optional[str]] = []

        if scope == ApprovalScope.GLOBAL:
            targets.append(None)
        elif scope == ApprovalScope.SESSION:
            if not session_id:
                logger.warning(f"Session revocation for {tool_name} without a session id ignored")
                return
            targets.append(session_id)
        else:
            targets.append(None)
            if session_id:
                targets.append(session_id)

        for target in targets:
            async with self._write_lock(tool_name, target):
                try:
                    await self._store.remove_auto_approved_tool(tool_name, target)
                except Exception as e:
                    warning = e if isinstance(e, PersistenceWarning) else PersistenceWarning(str(e))
                    logger.warning(f"Failed to revoke {tool_name} (session={target}): {warning}")
                    self._audit_log(
                        AuditEvent.PERSISTENCE_FAILED,
                        tool_name=tool_name,
                        session_id=target,
                        operation="revoke",
                        error=str(warning),
                    )
                    raise warning from e
            logger.info(f"Revoked auto-approval for {tool_name} (session={target})")
            self._audit_log(
                AuditEvent.DECISION_REVOKED,
                tool_name=tool_name,
                session_id=target,
                scope="session" if target else "global",
            )
